"""메인 실행 — NFT를 골라 스티커를 합성하고 PNG로 저장한다."""

import argparse
import asyncio
import logging
from pathlib import Path

from config import load_config
from content.catalog import OverlayCatalog
from content.mirror_node import MirrorNodeClient
from renderer.engine import CompositingEngine, DisplayRegion
from renderer.errors import OverlayzError
from session import EditorSession
from wallet.base import WalletEvent
from wallet.static import StaticAccountWallet

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(message)s")
logging.getLogger("aiohttp").setLevel(logging.WARNING)


def parse_overlay_arg(value: str) -> tuple[str, float | None, int | None, int | None]:
    """"id[:scale[:x[:y]]]" 형식의 스티커 인자를 해석한다."""
    parts = value.split(":")
    if not parts[0] or len(parts) > 4:
        raise argparse.ArgumentTypeError(f"잘못된 스티커 인자: {value}")
    scale = float(parts[1]) if len(parts) > 1 and parts[1] else None
    x = int(parts[2]) if len(parts) > 2 and parts[2] else None
    y = int(parts[3]) if len(parts) > 3 and parts[3] else None
    return parts[0], scale, x, y


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="NFT 스티커 합성기")
    parser.add_argument("--config", type=Path, default=None, help="config.json 경로")
    parser.add_argument("--account", help="계정 ID (설정값보다 우선)")
    parser.add_argument("--token", help="토큰(컬렉션) ID, 예: 0.0.1234")
    parser.add_argument("--serial", type=int, help="NFT 시리얼 번호 (기본: 첫 번째)")
    parser.add_argument("--overlay", action="append", default=[], type=parse_overlay_arg,
                        metavar="ID[:SCALE[:X[:Y]]]", help="적용할 스티커 (반복 가능)")
    parser.add_argument("--list-overlays", action="store_true", help="스티커 목록 출력")
    return parser


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)

    # 모듈 초기화
    catalog = OverlayCatalog.builtin(config["catalog"]["directory"])
    catalog.scan(config["catalog"]["directory"])
    if args.list_overlays:
        for category in catalog.categories():
            for entry in catalog.entries(category):
                print(f"{category:12} {entry.id:24} {entry.name}")
        return 0

    network = config["network"]["name"]
    client = MirrorNodeClient(
        network=network,
        timeout=config["network"]["request_timeout_sec"],
        gateway=config["ipfs"]["gateway"],
    )
    wallet = StaticAccountWallet(args.account or config["wallet"]["account_id"], network)
    wallet.on_event(WalletEvent.CONNECT, lambda account: logging.info("계정 연결됨: %s", account))
    await wallet.init()

    engine = CompositingEngine(
        export_dir=config["export"]["directory"],
        max_edge=config["canvas"]["max_edge"],
        default_size=(config["canvas"]["default_width"], config["canvas"]["default_height"]),
    )
    engine.initialize(DisplayRegion("preview", config["region"]["width"], config["region"]["height"]))
    session = EditorSession(engine, catalog, export_prefix=config["export"]["file_prefix"])

    account = None
    if args.account or config["wallet"]["account_id"]:
        account = await wallet.connect()

    try:
        return await _run(args, client, catalog, session, account)
    except OverlayzError as e:
        logging.error("합성 실패: %s", e)
        return 1
    finally:
        await wallet.disconnect()


async def _run(args, client: MirrorNodeClient, catalog: OverlayCatalog,
               session: EditorSession, account: str | None) -> int:
    # 토큰 미지정: 보유 컬렉션만 보여준다
    if not args.token:
        if account is None:
            logging.error("--token 또는 계정 ID가 필요합니다.")
            return 2
        for collection in await client.get_nft_collections(account):
            print(f"{collection.id:16} {collection.symbol:10} {collection.name} ({collection.total_supply})")
        return 0

    if account:
        nfts = await client.get_owned_nfts(account, args.token)
    else:
        nfts = await client.get_nfts_by_token_id(args.token)
    if args.serial is not None:
        nfts = [n for n in nfts if n.serial_number == args.serial]
    if not nfts:
        logging.error("NFT를 찾지 못했습니다: %s", args.token)
        return 1

    await session.select_nft(nfts[0])
    for overlay_id, scale, x, y in args.overlay:
        entry = catalog.get(overlay_id)
        if entry is None:
            logging.warning("알 수 없는 스티커: %s", overlay_id)
            continue
        await session.select_overlay(entry)
        session.update_selected(scale=scale, x=x, y=y)
    await session.save()
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(asyncio.run(main()))
    except KeyboardInterrupt:
        logging.info("종료")
