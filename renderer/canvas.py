"""가변 크기 Pillow 캔버스 관리 모듈."""

from io import BytesIO

from PIL import Image

# 초기 자리표시 크기 — 베이스 이미지가 로드되면 갱신된다
DEFAULT_WIDTH = 600
DEFAULT_HEIGHT = 600

TRANSPARENT = (0, 0, 0, 0)


class Canvas:
    """RGBA 서피스. 크기는 베이스 이미지에 맞춰 바뀐다."""

    def __init__(self, width: int = DEFAULT_WIDTH, height: int = DEFAULT_HEIGHT):
        self._image = Image.new("RGBA", (width, height), TRANSPARENT)

    @property
    def image(self) -> Image.Image:
        return self._image

    @property
    def size(self) -> tuple[int, int]:
        return self._image.size

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    def resize(self, width: int, height: int) -> None:
        """서피스 크기를 바꾼다. 기존 내용은 버려진다."""
        self._image = Image.new("RGBA", (width, height), TRANSPARENT)

    def clear(self, color: tuple = TRANSPARENT) -> None:
        """캔버스를 지정 색상으로 초기화한다."""
        self._image = Image.new("RGBA", self._image.size, color)

    def fill(self, layer: Image.Image) -> None:
        """레이어를 서피스 전체 크기로 늘려 그대로 덮어쓴다 (레터박스 없음)."""
        if layer.mode != "RGBA":
            layer = layer.convert("RGBA")
        self._image.paste(stretch(layer, self._image.size), (0, 0))

    def paste(self, layer: Image.Image, box: tuple[int, int, int, int]) -> None:
        """레이어를 box(left, top, width, height)에 맞춰 늘린 뒤 알파 블렌딩한다.

        box가 서피스 밖으로 나가면 잘린다. 면적이 0 이하이거나 서피스와
        겹치지 않으면 아무것도 그리지 않는다.
        """
        left, top, width, height = box
        if width <= 0 or height <= 0:
            return
        canvas_w, canvas_h = self._image.size
        if left >= canvas_w or top >= canvas_h or left + width <= 0 or top + height <= 0:
            return
        if layer.mode != "RGBA":
            layer = layer.convert("RGBA")

        # 서피스와 겹치는 부분만 리샘플링한다 (큰 scale에서도 서피스 크기 이하)
        vis_left, vis_top = max(left, 0), max(top, 0)
        vis_right, vis_bottom = min(left + width, canvas_w), min(top + height, canvas_h)
        if (vis_left, vis_top, vis_right, vis_bottom) == (left, top, left + width, top + height):
            scaled = stretch(layer, (width, height))
        else:
            sx = layer.width / width
            sy = layer.height / height
            src_box = (
                (vis_left - left) * sx,
                (vis_top - top) * sy,
                (vis_right - left) * sx,
                (vis_bottom - top) * sy,
            )
            scaled = layer.resize((vis_right - vis_left, vis_bottom - vis_top),
                                  Image.Resampling.LANCZOS, box=src_box)
        self._image = Image.alpha_composite(
            self._image, _place(scaled, (vis_left, vis_top), self._image.size),
        )

    def to_png(self) -> bytes:
        """현재 프레임을 PNG 바이트로 인코딩한다 (무손실, 알파 유지)."""
        buf = BytesIO()
        self._image.save(buf, format="PNG")
        return buf.getvalue()


def stretch(layer: Image.Image, size: tuple[int, int]) -> Image.Image:
    """레이어를 size로 늘린다. 크기가 같으면 원본을 반환한다."""
    if layer.size == size:
        return layer
    return layer.resize(size, Image.Resampling.LANCZOS)


def _place(layer: Image.Image, position: tuple, size: tuple[int, int]) -> Image.Image:
    """레이어를 캔버스 크기에 맞춰 지정 위치에 배치한다."""
    if layer.size == size and position == (0, 0):
        return layer
    result = Image.new("RGBA", size, TRANSPARENT)
    result.paste(layer, position)
    return result
