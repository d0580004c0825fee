"""스티커 합성 엔진 — 베이스 이미지와 오버레이 상태를 관리하고 렌더링한다.

엔진 인스턴스 하나가 서피스 하나를 소유한다. 모든 변경 연산은 성공하면
즉시 다시 렌더링하고, 실패하면 상태를 전혀 바꾸지 않는다.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from content.images import load_image
from .canvas import Canvas, DEFAULT_WIDTH, DEFAULT_HEIGHT
from .errors import ExportError, InitializationError
from .layers import LayerCompositor, Overlay
from .layout import MAX_EDGE, fit_surface

logger = logging.getLogger(__name__)


@dataclass
class DisplayRegion:
    """서피스를 담는 표시 영역."""
    name: str
    width: int
    height: int


class CompositingEngine:
    """베이스 이미지 위에 스티커 오버레이를 합성한다."""

    def __init__(self, export_dir: str | Path = "exports/", max_edge: int = MAX_EDGE,
                 default_size: tuple[int, int] = (DEFAULT_WIDTH, DEFAULT_HEIGHT)):
        self._export_dir = Path(export_dir)
        self._max_edge = max_edge
        self._default_size = default_size
        self._compositor = LayerCompositor()
        self._canvas: Canvas | None = None
        self._region: DisplayRegion | None = None
        self._base: Image.Image | None = None
        self._overlays: list[Overlay] = []
        self._next_order = 1
        # 오래된 디코딩 결과가 새 상태를 덮어쓰지 않도록 하는 세대 번호
        self._base_generation = 0
        self._overlay_epoch = 0

    @property
    def initialized(self) -> bool:
        return self._canvas is not None

    @property
    def canvas(self) -> Canvas | None:
        return self._canvas

    @property
    def base_image(self) -> Image.Image | None:
        return self._base

    @property
    def surface_size(self) -> tuple[int, int] | None:
        return self._canvas.size if self._canvas else None

    def initialize(self, region: DisplayRegion | None) -> Canvas:
        """표시 영역에 빈 서피스를 만든다. 이전 상태는 모두 버린다."""
        if region is None:
            raise InitializationError("표시 영역을 찾을 수 없음")
        if region.width <= 0 or region.height <= 0:
            raise InitializationError(f"표시 영역 크기가 잘못됨: {region.width}x{region.height}")

        self._region = region
        self._canvas = Canvas(*self._default_size)
        self._base = None
        self._overlays = []
        self._next_order = 1
        self._base_generation += 1
        self._overlay_epoch += 1
        logger.info("서피스 초기화: %s (%dx%d)", region.name, *self._canvas.size)
        self.render()
        return self._canvas

    def _require_initialized(self) -> Canvas:
        if self._canvas is None:
            raise InitializationError("엔진이 초기화되지 않음")
        return self._canvas

    async def set_base_image(self, source) -> None:
        """베이스 이미지를 디코딩해 서피스 크기를 맞추고 다시 그린다.

        적용된 오버레이는 지우지 않는다. 대상을 바꿀 때는 호출 측에서
        clear_overlays()를 먼저 불러야 한다.
        """
        self._require_initialized()
        self._base_generation += 1
        generation = self._base_generation

        img = await load_image(source)

        if generation != self._base_generation:
            logger.info("베이스 이미지 결과 무시 (더 최근 요청 있음)")
            return

        size = fit_surface(img.size, (self._region.width, self._region.height), self._max_edge)
        self._base = img
        self._canvas.resize(*size)
        logger.info("베이스 이미지 설정: 원본 %dx%d → 서피스 %dx%d", img.width, img.height, *size)
        self.render()

    async def add_or_toggle_overlay(self, entry) -> Overlay | None:
        """카탈로그 항목을 적용한다. 이미 적용된 항목이면 제거한다.

        entry는 id, name, image_source 속성을 가진 카탈로그 항목이다.
        추가되면 새 인스턴스를, 제거되면 None을 반환한다.
        """
        self._require_initialized()
        if self._find(entry.id) is not None:
            self.remove_overlay(entry.id)
            return None

        epoch = self._overlay_epoch
        img = await load_image(entry.image_source)

        if epoch != self._overlay_epoch:
            logger.info("오버레이 결과 무시: %s (그 사이 초기화됨)", entry.id)
            return None
        existing = self._find(entry.id)
        if existing is not None:
            return existing

        overlay = Overlay(
            id=entry.id,
            name=entry.name,
            image=img,
            stacking_order=self._next_order,
        )
        self._next_order += 1
        self._overlays.append(overlay)
        logger.info("오버레이 추가: %s (순서 %d)", overlay.id, overlay.stacking_order)
        self.render()
        return overlay

    def remove_overlay(self, overlay_id: str) -> bool:
        """오버레이를 제거한다. 제거했으면 True."""
        overlay = self._find(overlay_id)
        if overlay is None:
            return False
        self._overlays.remove(overlay)
        logger.info("오버레이 제거: %s", overlay_id)
        self.render()
        return True

    def clear_overlays(self) -> None:
        """적용된 오버레이를 모두 지운다. 베이스 이미지는 그대로 둔다."""
        self._overlays = []
        self._overlay_epoch += 1
        self.render()

    def update_overlay_transform(self, overlay_id: str, offset_x: int | None = None,
                                 offset_y: int | None = None,
                                 scale: float | None = None) -> None:
        """지정한 필드만 바꾼다. 범위 검사는 하지 않는다."""
        overlay = self._find(overlay_id)
        if overlay is None:
            return
        previous = (overlay.offset_x, overlay.offset_y, overlay.scale)
        if offset_x is not None:
            overlay.offset_x = offset_x
        if offset_y is not None:
            overlay.offset_y = offset_y
        if scale is not None:
            overlay.scale = scale
        try:
            self.render()
        except Exception:
            # 렌더링 실패 시 변경 전 상태와 프레임으로 되돌린다
            overlay.offset_x, overlay.offset_y, overlay.scale = previous
            logger.warning("오버레이 변환 롤백: %s", overlay_id)
            self.render()
            raise

    def get_overlays(self) -> list[Overlay]:
        """적용된 오버레이 목록의 얕은 복사본."""
        return list(self._overlays)

    def render(self) -> None:
        """현재 상태로 서피스를 다시 그린다."""
        if self._canvas is None:
            return
        self._compositor.compose(self._canvas, self._base, self._overlays)

    async def export_composite(self, file_name_base: str) -> bytes:
        """마지막으로 렌더링된 프레임을 PNG로 저장하고 인코딩된 바이트를 반환한다."""
        if self._canvas is None:
            raise ExportError("엔진이 초기화되지 않음")

        data = self._canvas.to_png()
        path = self._export_dir / f"{file_name_base}.png"
        try:
            self._export_dir.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as e:
            raise ExportError(f"저장 실패: {path} ({e})") from e

        logger.info("내보내기 완료: %s (%dx%d, %d bytes)", path, *self._canvas.size, len(data))
        return data

    def _find(self, overlay_id: str) -> Overlay | None:
        for overlay in self._overlays:
            if overlay.id == overlay_id:
                return overlay
        return None
