"""스티커 카탈로그 모듈 — 카테고리별 오버레이 템플릿을 관리한다."""

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# 기본 스티커 에셋 경로
ASSET_DIR = "assets/overlays"


@dataclass(frozen=True)
class CatalogEntry:
    """선택 가능한 스티커 템플릿."""
    id: str
    name: str
    image_source: str | bytes
    category: str = ""


# 카테고리 → (id, 이름, 파일명)
_BUILTIN = {
    "hats": [
        ("hat1", "Party Hat", "party-hat.png"),
        ("hat2", "Cowboy Hat", "cowboy-hat.png"),
        ("hat3", "Crown", "crown.png"),
        ("hat4", "Beanie", "beanie.png"),
        ("hat5", "Wizard Hat", "wizard-hat.png"),
        ("hat6", "Cap", "cap.png"),
    ],
    "glasses": [
        ("glass1", "Sunglasses", "sunglasses.png"),
        ("glass2", "Nerd Glasses", "nerd-glasses.png"),
        ("glass3", "Cool Shades", "cool-shades.png"),
        ("glass4", "Heart Glasses", "heart-glasses.png"),
    ],
    "accessories": [
        ("acc1", "Coffee Cup", "coffee-cup.png"),
        ("acc2", "Microphone", "microphone.png"),
        ("acc3", "Pipe", "pipe.png"),
        ("acc4", "Bow Tie", "bow-tie.png"),
        ("acc5", "Mustache", "mustache.png"),
    ],
}


class OverlayCatalog:
    """카테고리별 카탈로그 항목 목록."""

    def __init__(self, entries: list[CatalogEntry] | None = None):
        self._categories: dict[str, list[CatalogEntry]] = {}
        for entry in entries or []:
            self.add(entry)

    @classmethod
    def builtin(cls, asset_dir: str = ASSET_DIR) -> "OverlayCatalog":
        """기본 스티커 세트로 카탈로그를 만든다."""
        base = Path(asset_dir)
        entries = [
            CatalogEntry(id=item_id, name=name,
                         image_source=str(base / category / filename),
                         category=category)
            for category, items in _BUILTIN.items()
            for item_id, name, filename in items
        ]
        return cls(entries)

    def add(self, entry: CatalogEntry) -> None:
        if self.get(entry.id) is not None:
            raise ValueError(f"중복된 카탈로그 id: {entry.id}")
        self._categories.setdefault(entry.category, []).append(entry)

    def categories(self) -> list[str]:
        return list(self._categories)

    def entries(self, category: str) -> list[CatalogEntry]:
        """카테고리의 항목 목록. 없는 카테고리는 빈 목록."""
        return list(self._categories.get(category, []))

    def get(self, entry_id: str) -> CatalogEntry | None:
        for items in self._categories.values():
            for entry in items:
                if entry.id == entry_id:
                    return entry
        return None

    def scan(self, directory: str | Path) -> int:
        """<directory>/<카테고리>/*.png를 찾아 카탈로그에 추가한다.

        id는 "<카테고리>/<파일이름>", 이름은 파일 이름에서 만든다.
        이미 있는 id는 건너뛴다. 추가된 개수를 반환한다.
        """
        root = Path(directory)
        if not root.exists():
            logger.warning("스티커 디렉토리 없음: %s", root)
            return 0

        added = 0
        for category_dir in sorted(p for p in root.iterdir() if p.is_dir()):
            for path in sorted(category_dir.glob("*.png")):
                entry_id = f"{category_dir.name}/{path.stem}"
                if self.get(entry_id) is not None:
                    continue
                name = path.stem.replace("-", " ").replace("_", " ").title()
                self.add(CatalogEntry(id=entry_id, name=name,
                                      image_source=str(path),
                                      category=category_dir.name))
                added += 1
        logger.info("스티커 %d개 추가: %s", added, root)
        return added
