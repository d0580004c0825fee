import asyncio
import threading
from io import BytesIO
from pathlib import Path

import aiohttp
import pytest
from PIL import Image

import content.images
from content.catalog import CatalogEntry
from renderer.canvas import Canvas
from renderer.engine import CompositingEngine, DisplayRegion
from renderer.errors import ExportError, ImageLoadError, InitializationError
from tests.test_utils import BLUE, GREEN, RED, make_engine, make_entry, make_png, pixels


def test_initialize_without_region_fails() -> None:
    engine = CompositingEngine()
    with pytest.raises(InitializationError):
        engine.initialize(None)
    assert not engine.initialized


def test_initialize_creates_placeholder_surface(tmp_path) -> None:
    engine = make_engine(tmp_path)
    assert engine.surface_size == (600, 600)
    assert engine.base_image is None
    assert engine.get_overlays() == []


def test_reinitialize_resets_state(tmp_path) -> None:
    engine = make_engine(tmp_path)

    async def scenario() -> None:
        await engine.set_base_image(make_png((100, 100), GREEN))
        await engine.add_or_toggle_overlay(make_entry("hat1"))

    asyncio.run(scenario())
    engine.initialize(DisplayRegion("preview", 500, 500))
    assert engine.base_image is None
    assert engine.get_overlays() == []
    assert engine.surface_size == (600, 600)


def test_set_base_image_before_initialize_fails() -> None:
    engine = CompositingEngine()
    with pytest.raises(InitializationError):
        asyncio.run(engine.set_base_image(make_png((10, 10))))


def test_surface_keeps_aspect_ratio_for_wide_image(tmp_path) -> None:
    engine = make_engine(tmp_path, region=(500, 500))
    asyncio.run(engine.set_base_image(make_png((1600, 800), GREEN)))
    width, height = engine.surface_size
    assert width <= min(800, 500)
    assert height == width / 2.0


def test_surface_height_constrained_for_tall_image(tmp_path) -> None:
    engine = make_engine(tmp_path, region=(1000, 1000))
    asyncio.run(engine.set_base_image(make_png((400, 1600), GREEN)))
    assert engine.surface_size == (200, 800)


def test_base_image_does_not_clear_overlays(tmp_path) -> None:
    engine = make_engine(tmp_path)

    async def scenario() -> None:
        await engine.set_base_image(make_png((100, 100), GREEN))
        await engine.add_or_toggle_overlay(make_entry("hat1"))
        await engine.set_base_image(make_png((200, 100), BLUE))

    asyncio.run(scenario())
    assert [o.id for o in engine.get_overlays()] == ["hat1"]


def test_toggle_restores_count_and_pixels(tmp_path) -> None:
    engine = make_engine(tmp_path)
    entry = make_entry("glass1", BLUE, size=(16, 16))

    async def scenario() -> None:
        await engine.set_base_image(make_png((300, 300), GREEN))
        before = pixels(engine)
        added = await engine.add_or_toggle_overlay(entry)
        assert added is not None
        assert len(engine.get_overlays()) == 1
        removed = await engine.add_or_toggle_overlay(entry)
        assert removed is None
        assert len(engine.get_overlays()) == 0
        assert pixels(engine) == before

    asyncio.run(scenario())


def test_new_overlay_defaults(tmp_path) -> None:
    engine = make_engine(tmp_path)
    overlay = asyncio.run(engine.add_or_toggle_overlay(make_entry("hat1")))
    assert overlay.id == "hat1"
    assert overlay.name == "Hat1"
    assert (overlay.offset_x, overlay.offset_y, overlay.scale) == (0, 0, 1.0)
    assert overlay.stacking_order == 1


def test_stacking_order_never_reused(tmp_path) -> None:
    engine = make_engine(tmp_path)
    a, b, c = make_entry("a"), make_entry("b"), make_entry("c")

    async def scenario() -> None:
        for entry in (a, b, c):
            await engine.add_or_toggle_overlay(entry)
        assert engine.remove_overlay("a")
        return await engine.add_or_toggle_overlay(a)

    readded = asyncio.run(scenario())
    orders = {o.id: o.stacking_order for o in engine.get_overlays()}
    assert readded.stacking_order > orders["c"]
    assert [o.id for o in engine.get_overlays()] == ["b", "c", "a"]


def test_later_stacking_order_draws_on_top(tmp_path) -> None:
    engine = make_engine(tmp_path)

    async def scenario() -> None:
        await engine.set_base_image(make_png((200, 200), GREEN))
        await engine.add_or_toggle_overlay(make_entry("red", RED))
        await engine.add_or_toggle_overlay(make_entry("blue", BLUE))

    asyncio.run(scenario())
    assert engine.canvas.image.getpixel((10, 10)) == BLUE

    # 제거 후 다시 적용하면 맨 위로 올라간다
    engine.remove_overlay("red")
    asyncio.run(engine.add_or_toggle_overlay(make_entry("red", RED)))
    assert engine.canvas.image.getpixel((10, 10)) == RED


def test_default_transform_covers_surface(tmp_path) -> None:
    engine = make_engine(tmp_path)

    async def scenario() -> None:
        await engine.set_base_image(make_png((400, 200), GREEN))
        await engine.add_or_toggle_overlay(make_entry("red", RED))

    asyncio.run(scenario())
    img = engine.canvas.image
    width, height = img.size
    for point in [(0, 0), (width - 1, 0), (0, height - 1), (width - 1, height - 1), (width // 2, height // 2)]:
        assert img.getpixel(point) == RED


def test_update_transform_is_sparse(tmp_path) -> None:
    engine = make_engine(tmp_path)
    asyncio.run(engine.add_or_toggle_overlay(make_entry("hat1")))
    engine.update_overlay_transform("hat1", offset_x=12, offset_y=-7)
    engine.update_overlay_transform("hat1", scale=2.0)
    overlay = engine.get_overlays()[0]
    assert (overlay.offset_x, overlay.offset_y, overlay.scale) == (12, -7, 2.0)


def test_update_transform_unknown_id_is_noop(tmp_path) -> None:
    engine = make_engine(tmp_path)
    before = pixels(engine)
    engine.update_overlay_transform("missing", scale=3.0)
    assert pixels(engine) == before


def test_scaled_overlay_is_centered(tmp_path) -> None:
    engine = make_engine(tmp_path)

    async def scenario() -> None:
        await engine.set_base_image(make_png((200, 200), GREEN))
        await engine.add_or_toggle_overlay(make_entry("red", RED))

    asyncio.run(scenario())
    # 500x500 서피스, scale 0.5 → (125, 125)부터 250x250
    assert engine.surface_size == (500, 500)
    engine.update_overlay_transform("red", scale=0.5)
    img = engine.canvas.image
    assert img.getpixel((250, 250)) == RED
    assert img.getpixel((130, 130)) == RED
    assert img.getpixel((10, 10)) == GREEN

    engine.update_overlay_transform("red", offset_x=60)
    img = engine.canvas.image
    assert img.getpixel((150, 250)) == GREEN
    assert img.getpixel((420, 250)) == RED


def test_off_canvas_and_degenerate_transforms_allowed(tmp_path) -> None:
    engine = make_engine(tmp_path)

    async def scenario() -> None:
        await engine.set_base_image(make_png((200, 200), GREEN))
        before = pixels(engine)
        await engine.add_or_toggle_overlay(make_entry("red", RED))
        return before

    base_only = asyncio.run(scenario())
    engine.update_overlay_transform("red", offset_x=10_000, offset_y=-10_000)
    assert pixels(engine) == base_only
    engine.update_overlay_transform("red", offset_x=0, offset_y=0, scale=0.0)
    assert pixels(engine) == base_only
    engine.update_overlay_transform("red", scale=-1.0)
    assert pixels(engine) == base_only
    assert engine.get_overlays()[0].scale == -1.0


def test_remove_overlay(tmp_path) -> None:
    engine = make_engine(tmp_path)
    asyncio.run(engine.add_or_toggle_overlay(make_entry("hat1")))
    assert engine.remove_overlay("hat1") is True
    assert engine.remove_overlay("hat1") is False
    assert engine.get_overlays() == []


def test_clear_overlays_keeps_base(tmp_path) -> None:
    engine = make_engine(tmp_path)

    async def scenario() -> None:
        await engine.set_base_image(make_png((200, 200), GREEN))
        await engine.add_or_toggle_overlay(make_entry("a", RED))
        await engine.add_or_toggle_overlay(make_entry("b", BLUE))

    asyncio.run(scenario())
    engine.clear_overlays()
    assert engine.get_overlays() == []
    assert engine.base_image is not None
    assert engine.canvas.image.getpixel((5, 5)) == GREEN


def test_get_overlays_returns_copy(tmp_path) -> None:
    engine = make_engine(tmp_path)
    asyncio.run(engine.add_or_toggle_overlay(make_entry("hat1")))
    snapshot = engine.get_overlays()
    snapshot.clear()
    assert len(engine.get_overlays()) == 1


def test_failed_overlay_load_leaves_state(tmp_path) -> None:
    engine = make_engine(tmp_path)
    asyncio.run(engine.add_or_toggle_overlay(make_entry("hat1")))
    before = pixels(engine)
    broken = CatalogEntry(id="broken", name="Broken", image_source=b"not an image")
    with pytest.raises(ImageLoadError):
        asyncio.run(engine.add_or_toggle_overlay(broken))
    assert [o.id for o in engine.get_overlays()] == ["hat1"]
    assert pixels(engine) == before
    # 실패한 요청은 순서값을 소비하지 않는다
    overlay = asyncio.run(engine.add_or_toggle_overlay(make_entry("hat2")))
    assert overlay.stacking_order == 2


def test_unreachable_base_url_then_valid(tmp_path, monkeypatch) -> None:
    engine = make_engine(tmp_path)
    valid = make_png((100, 50), BLUE)

    async def fake_fetch(url: str, timeout: float = 10) -> bytes:
        if "unreachable" in url:
            raise aiohttp.ClientConnectionError("connection refused")
        return valid

    monkeypatch.setattr(content.images, "fetch_bytes", fake_fetch)

    with pytest.raises(ImageLoadError):
        asyncio.run(engine.set_base_image("https://unreachable.example/nft.png"))
    assert engine.base_image is None
    assert engine.surface_size == (600, 600)

    asyncio.run(engine.set_base_image("https://ok.example/nft.png"))
    assert engine.base_image.size == (100, 50)
    assert engine.canvas.image.getpixel((0, 0)) == BLUE


def test_latest_base_image_request_wins(tmp_path, monkeypatch) -> None:
    engine = make_engine(tmp_path)
    slow = make_png((100, 100), RED)
    fast = make_png((200, 100), BLUE)

    async def fake_fetch(url: str, timeout: float = 10) -> bytes:
        if "slow" in url:
            await asyncio.sleep(0.05)
            return slow
        return fast

    monkeypatch.setattr(content.images, "fetch_bytes", fake_fetch)

    async def scenario() -> None:
        await asyncio.gather(
            engine.set_base_image("https://x.example/slow.png"),
            engine.set_base_image("https://x.example/fast.png"),
        )

    asyncio.run(scenario())
    assert engine.base_image.size == (200, 100)
    assert engine.canvas.image.getpixel((0, 0)) == BLUE


def test_overlapping_overlay_loads_commit_independently(tmp_path, monkeypatch) -> None:
    engine = make_engine(tmp_path)

    async def fake_fetch(url: str, timeout: float = 10) -> bytes:
        if "slow" in url:
            await asyncio.sleep(0.05)
        return make_png((8, 8), RED)

    monkeypatch.setattr(content.images, "fetch_bytes", fake_fetch)
    slow = CatalogEntry(id="slow", name="Slow", image_source="https://x.example/slow.png")
    fast = CatalogEntry(id="fast", name="Fast", image_source="https://x.example/fast.png")

    async def scenario() -> None:
        await asyncio.gather(engine.add_or_toggle_overlay(slow), engine.add_or_toggle_overlay(fast))

    asyncio.run(scenario())
    assert sorted(o.id for o in engine.get_overlays()) == ["fast", "slow"]
    orders = [o.stacking_order for o in engine.get_overlays()]
    assert len(set(orders)) == 2


def test_overlay_load_discarded_after_clear(tmp_path, monkeypatch) -> None:
    engine = make_engine(tmp_path)

    async def fake_fetch(url: str, timeout: float = 10) -> bytes:
        await asyncio.sleep(0.05)
        return make_png((8, 8), RED)

    monkeypatch.setattr(content.images, "fetch_bytes", fake_fetch)
    entry = CatalogEntry(id="late", name="Late", image_source="https://x.example/late.png")

    async def scenario():
        task = asyncio.create_task(engine.add_or_toggle_overlay(entry))
        await asyncio.sleep(0)
        engine.clear_overlays()
        return await task

    assert asyncio.run(scenario()) is None
    assert engine.get_overlays() == []


def test_export_before_initialize_fails(tmp_path) -> None:
    engine = CompositingEngine(export_dir=tmp_path)
    with pytest.raises(ExportError):
        asyncio.run(engine.export_composite("nothing"))


def test_export_matches_stretched_base(tmp_path) -> None:
    engine = make_engine(tmp_path, region=(500, 500))
    base = Image.new("RGBA", (1600, 800), (10, 20, 30, 128))
    base.paste(Image.new("RGBA", (800, 400), (200, 100, 50, 255)), (0, 0))

    async def scenario() -> bytes:
        await engine.set_base_image(base)
        return await engine.export_composite("overlayz-0.0.1-1")

    data = asyncio.run(scenario())
    saved = tmp_path / "overlayz-0.0.1-1.png"
    assert saved.read_bytes() == data

    exported = Image.open(BytesIO(data))
    assert exported.format == "PNG"
    assert exported.mode == "RGBA"
    assert exported.size == (500, 250)
    expected = base.resize((500, 250), Image.Resampling.LANCZOS)
    assert exported.tobytes() == expected.tobytes()


def test_export_does_not_rerender(tmp_path) -> None:
    engine = make_engine(tmp_path)
    asyncio.run(engine.set_base_image(make_png((100, 100), GREEN)))
    engine.canvas.image.putpixel((0, 0), BLUE)
    data = asyncio.run(engine.export_composite("frame"))
    assert Image.open(BytesIO(data)).getpixel((0, 0)) == BLUE


def test_add_overlay_before_initialize_fails() -> None:
    engine = CompositingEngine()
    with pytest.raises(InitializationError):
        asyncio.run(engine.add_or_toggle_overlay(make_entry("hat1")))


def test_large_scale_overlay_draws_visible_part(tmp_path) -> None:
    engine = make_engine(tmp_path)

    async def scenario() -> bytes:
        await engine.set_base_image(make_png((200, 200), GREEN))
        before = pixels(engine)
        await engine.add_or_toggle_overlay(make_entry("red", RED))
        return before

    base_only = asyncio.run(scenario())
    # 50000x50000 박스 중 서피스와 겹치는 부분만 그린다
    engine.update_overlay_transform("red", scale=100.0)
    img = engine.canvas.image
    for point in [(0, 0), (499, 0), (0, 499), (499, 499), (250, 250)]:
        assert img.getpixel(point) == RED

    # left = 250 → 오른쪽 절반만 덮는다
    engine.update_overlay_transform("red", offset_x=25_000)
    img = engine.canvas.image
    assert img.getpixel((100, 250)) == GREEN
    assert img.getpixel((400, 250)) == RED

    engine.update_overlay_transform("red", offset_x=25_250)
    assert pixels(engine) == base_only


def test_failed_transform_render_rolls_back(tmp_path, monkeypatch) -> None:
    engine = make_engine(tmp_path)

    async def scenario() -> None:
        await engine.set_base_image(make_png((200, 200), GREEN))
        await engine.add_or_toggle_overlay(make_entry("red", RED))

    asyncio.run(scenario())
    engine.update_overlay_transform("red", offset_x=30, scale=0.5)
    before = pixels(engine)

    original_paste = Canvas.paste

    def failing_paste(self, layer, box) -> None:
        if box[2] > 1000:
            raise MemoryError("too large")
        original_paste(self, layer, box)

    monkeypatch.setattr(Canvas, "paste", failing_paste)
    with pytest.raises(MemoryError):
        engine.update_overlay_transform("red", offset_x=-40, scale=100.0)

    overlay = engine.get_overlays()[0]
    assert (overlay.offset_x, overlay.offset_y, overlay.scale) == (30, 0, 0.5)
    assert pixels(engine) == before


def test_decompression_bomb_overlay_rejected(tmp_path, monkeypatch) -> None:
    engine = make_engine(tmp_path)
    asyncio.run(engine.add_or_toggle_overlay(make_entry("hat1")))
    before = pixels(engine)

    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    with pytest.raises(ImageLoadError):
        asyncio.run(engine.add_or_toggle_overlay(make_entry("huge", BLUE, size=(20, 20))))
    assert [o.id for o in engine.get_overlays()] == ["hat1"]
    assert pixels(engine) == before


def test_export_writes_off_event_loop_thread(tmp_path, monkeypatch) -> None:
    engine = make_engine(tmp_path)
    threads = []
    original_write = Path.write_bytes

    def recording_write(self, data: bytes) -> int:
        threads.append(threading.current_thread())
        return original_write(self, data)

    monkeypatch.setattr(Path, "write_bytes", recording_write)
    data = asyncio.run(engine.export_composite("frame"))
    assert (tmp_path / "frame.png").read_bytes() == data
    assert threads and threads[0] is not threading.main_thread()


def test_export_write_failure_raises(tmp_path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    engine = CompositingEngine(export_dir=blocker)
    engine.initialize(DisplayRegion("preview", 100, 100))
    with pytest.raises(ExportError):
        asyncio.run(engine.export_composite("frame"))
