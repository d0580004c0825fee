"""서피스 레이아웃 모듈 — 서피스 크기와 오버레이 위치를 계산한다."""

# 서피스 한 변의 최대 길이
MAX_EDGE = 800


def fit_surface(image_size: tuple[int, int], region_size: tuple[int, int],
                max_edge: int = MAX_EDGE) -> tuple[int, int]:
    """베이스 이미지 비율을 유지하면서 표시 영역에 맞는 서피스 크기를 구한다.

    이미지가 영역보다 가로로 더 길면 너비를 제한하고 높이를 유도한다.
    그렇지 않으면 높이를 제한하고 너비를 유도한다. 어느 쪽이든 제한되는
    변은 max_edge와 영역 크기를 넘지 않는다. 소수점 이하는 버린다.
    """
    image_w, image_h = image_size
    region_w, region_h = region_size
    image_ratio = image_w / image_h
    region_ratio = region_w / region_h

    if image_ratio > region_ratio:
        width = min(region_w, max_edge)
        height = width / image_ratio
    else:
        height = min(region_h, max_edge)
        width = height * image_ratio

    return max(1, int(width)), max(1, int(height))


def overlay_box(surface_size: tuple[int, int], offset_x: int, offset_y: int,
                scale: float) -> tuple[int, int, int, int]:
    """오버레이가 그려질 (left, top, width, height)를 반환한다.

    크기는 서피스 크기 × scale, 위치는 서피스 중앙 기준에 오프셋을 더한다.
    """
    surface_w, surface_h = surface_size
    width = surface_w * scale
    height = surface_h * scale
    left = surface_w / 2 - width / 2 + offset_x
    top = surface_h / 2 - height / 2 + offset_y
    return round(left), round(top), round(width), round(height)
