"""편집 세션 — NFT 선택, 스티커 선택/적용, 저장 흐름을 엔진에 연결한다."""

import logging

from content.catalog import CatalogEntry, OverlayCatalog
from content.mirror_node import NftItem
from renderer.engine import CompositingEngine
from renderer.layers import Overlay

logger = logging.getLogger(__name__)


class NoSelectionError(Exception):
    """NFT를 먼저 선택해야 한다."""


class EditorSession:
    """선택된 NFT와 편집 중인 스티커 하나를 추적한다."""

    def __init__(self, engine: CompositingEngine, catalog: OverlayCatalog,
                 export_prefix: str = "overlayz"):
        self.engine = engine
        self.catalog = catalog
        self.export_prefix = export_prefix
        self.selected_nft: NftItem | None = None
        self.selected_overlay: CatalogEntry | None = None

    @property
    def controls_visible(self) -> bool:
        """위치/크기 조절 컨트롤 표시 여부."""
        return self.selected_overlay is not None

    async def select_nft(self, nft: NftItem) -> None:
        """NFT를 편집 대상으로 정한다. 적용된 스티커는 모두 초기화된다."""
        self.selected_nft = nft
        self.reset_overlays()
        await self.engine.set_base_image(nft.image_url)
        logger.info("NFT 선택: %s #%s", nft.token_id, nft.serial_number)

    async def select_overlay(self, entry: CatalogEntry) -> Overlay | None:
        """스티커를 클릭했을 때의 동작.

        - 편집 중인 스티커를 다시 누르면 선택만 해제한다.
        - 이미 적용된 스티커면 편집 대상으로 선택한다.
        - 아니면 새로 적용하고 선택한다.
        """
        if self.selected_nft is None:
            raise NoSelectionError("NFT를 먼저 선택하세요")

        if self.selected_overlay is not None and self.selected_overlay.id == entry.id:
            self.deselect_overlay()
            return None

        self.deselect_overlay()

        for overlay in self.engine.get_overlays():
            if overlay.id == entry.id:
                self.selected_overlay = entry
                return overlay

        overlay = await self.engine.add_or_toggle_overlay(entry)
        self.selected_overlay = entry
        return overlay

    def deselect_overlay(self) -> None:
        self.selected_overlay = None

    def update_selected(self, scale: float | None = None, x: int | None = None,
                        y: int | None = None) -> None:
        """편집 중인 스티커의 위치/크기를 바꾼다. 선택된 스티커가 없으면 무시."""
        if self.selected_overlay is None:
            return
        self.engine.update_overlay_transform(
            self.selected_overlay.id, offset_x=x, offset_y=y, scale=scale,
        )

    def remove_selected(self) -> bool:
        """편집 중인 스티커를 제거한다."""
        if self.selected_overlay is None:
            return False
        removed = self.engine.remove_overlay(self.selected_overlay.id)
        self.deselect_overlay()
        return removed

    def reset_overlays(self) -> None:
        """적용된 스티커와 선택 상태를 모두 지운다."""
        self.selected_overlay = None
        self.engine.clear_overlays()

    def file_name(self) -> str:
        nft = self.selected_nft
        return f"{self.export_prefix}-{nft.token_id}-{nft.serial_number}"

    async def save(self) -> bytes:
        """합성 결과를 overlayz-<토큰>-<시리얼>.png로 내보낸다."""
        if self.selected_nft is None:
            raise NoSelectionError("저장할 NFT가 없음")
        return await self.engine.export_composite(self.file_name())
