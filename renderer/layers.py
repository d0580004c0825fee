"""레이어 합성 모듈 — 베이스 이미지 + 스티커 오버레이."""

from dataclasses import dataclass

from PIL import Image

from .canvas import Canvas
from .layout import overlay_box


@dataclass
class Overlay:
    """서피스에 적용된 스티커 인스턴스."""
    id: str
    name: str
    image: Image.Image
    offset_x: int = 0         # 중앙 기준 가로 오프셋 (px)
    offset_y: int = 0         # 중앙 기준 세로 오프셋 (px)
    scale: float = 1.0        # 1.0 = 서피스 전체 크기
    stacking_order: int = 0   # 클수록 위에 그려진다


class LayerCompositor:
    """베이스와 오버레이 레이어를 합성하여 서피스에 그린다."""

    def compose(
        self,
        canvas: Canvas,
        base: Image.Image | None = None,
        overlays: list[Overlay] | None = None,
    ) -> Canvas:
        """캔버스를 비우고 베이스 위에 오버레이들을 쌓아 그린다.

        Args:
            canvas: 그릴 대상 서피스
            base: 서피스 전체로 늘려 그릴 베이스 이미지 (None이면 투명)
            overlays: 적용된 오버레이 목록 (stacking_order 오름차순으로 그림)

        Returns:
            같은 canvas
        """
        canvas.clear()

        # 베이스 레이어
        if base is not None:
            canvas.fill(base)

        # 오버레이 레이어들 — sorted는 안정 정렬이므로 같은 순서값은 삽입 순
        if overlays:
            for overlay in sorted(overlays, key=lambda o: o.stacking_order):
                box = overlay_box(canvas.size, overlay.offset_x, overlay.offset_y, overlay.scale)
                canvas.paste(overlay.image, box)

        return canvas
