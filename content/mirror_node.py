"""Hedera 미러 노드 REST 클라이언트 — NFT 컬렉션 / NFT 목록 / 메타데이터 조회."""

import asyncio
import base64
import binascii
import json
import logging
import string
from dataclasses import dataclass, field

import aiohttp

from .images import DEFAULT_GATEWAY, ipfs_to_gateway

logger = logging.getLogger(__name__)

API_BASES = {
    "mainnet": "https://mainnet-public.mirrornode.hedera.com/api/v1",
    "testnet": "https://testnet.mirrornode.hedera.com/api/v1",
}

PLACEHOLDER_THUMB = "https://via.placeholder.com/150?text=NFT"
PLACEHOLDER_IMAGE = "https://via.placeholder.com/300?text=NFT"

NFT_TOKEN_TYPE = "NON_FUNGIBLE_UNIQUE"


@dataclass
class NftCollection:
    """계정이 보유한 NFT 컬렉션 (토큰)."""
    id: str
    name: str
    symbol: str
    total_supply: int
    image_url: str


@dataclass
class NftItem:
    """컬렉션 안의 NFT 하나."""
    token_id: str
    serial_number: int
    metadata: dict = field(default_factory=dict)
    image_url: str = PLACEHOLDER_IMAGE

    @property
    def id(self) -> int:
        return self.serial_number


def decode_metadata_bytes(raw: str) -> str:
    """미러 노드의 metadata 필드를 UTF-8 문자열로 바꾼다.

    짝수 길이의 16진 문자열이면 hex로, 아니면 base64로 해석한다.
    """
    if raw and len(raw) % 2 == 0 and all(c in string.hexdigits for c in raw):
        data = bytes.fromhex(raw)
    else:
        data = base64.b64decode(raw, validate=True)
    return data.decode("utf-8")


class MirrorNodeClient:
    """미러 노드 API에서 NFT 정보를 가져온다. 캐시와 재시도는 하지 않는다."""

    def __init__(self, network: str = "mainnet", timeout: float = 10,
                 gateway: str = DEFAULT_GATEWAY):
        if network not in API_BASES:
            raise ValueError(f"알 수 없는 네트워크: {network}")
        self._base = API_BASES[network]
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._gateway = gateway

    def gateway_url(self, uri: str | None, placeholder: str = PLACEHOLDER_THUMB) -> str:
        """ipfs:// URI를 게이트웨이 URL로 바꾼다. 비어 있으면 자리표시 이미지."""
        if not uri:
            return placeholder
        return ipfs_to_gateway(uri, self._gateway)

    async def _get_json(self, url: str, params: dict | None = None) -> dict:
        async with aiohttp.ClientSession() as session:
            async with session.get(url, params=params, timeout=self._timeout) as resp:
                if resp.status != 200:
                    raise RuntimeError(f"API 요청 실패: HTTP {resp.status} ({url})")
                return await resp.json(content_type=None)

    async def get_token_info(self, token_id: str) -> dict:
        """토큰 정보를 조회한다. 실패하면 예외를 던진다."""
        return await self._get_json(f"{self._base}/tokens/{token_id}")

    async def get_nft_collections(self, account_id: str) -> list[NftCollection]:
        """계정이 보유한 NFT 컬렉션 목록. 실패하면 빈 목록."""
        try:
            data = await self._get_json(f"{self._base}/accounts/{account_id}/tokens")
        except Exception as e:
            logger.warning("컬렉션 조회 실패: %s (%s)", account_id, e)
            return []

        token_ids = []
        for t in data.get("tokens") or []:
            token_id = t.get("token_id") if isinstance(t, dict) else None
            if not token_id:
                logger.warning("잘못된 토큰 항목 건너뜀: %r", t)
                continue
            token_ids.append(token_id)
        results = await asyncio.gather(*(self._collection(token_id) for token_id in token_ids))
        collections = [c for c in results if c is not None]
        logger.info("컬렉션 %d개 발견: %s", len(collections), account_id)
        return collections

    async def _collection(self, token_id: str) -> NftCollection | None:
        try:
            info = await self.get_token_info(token_id)
        except Exception as e:
            logger.warning("토큰 정보 조회 실패: %s (%s)", token_id, e)
            return None
        if info.get("type") != NFT_TOKEN_TYPE:
            return None
        return NftCollection(
            id=token_id,
            name=info.get("name", ""),
            symbol=info.get("symbol", ""),
            total_supply=int(info.get("total_supply") or 0),
            image_url=await self.get_collection_image_url(token_id),
        )

    async def get_collection_image_url(self, token_id: str) -> str:
        """컬렉션 첫 NFT의 이미지를 대표 이미지로 사용한다."""
        nfts = await self.get_nfts_by_token_id(token_id, limit=1)
        if nfts and nfts[0].metadata.get("image"):
            return self.gateway_url(nfts[0].metadata["image"])
        return PLACEHOLDER_THUMB

    async def get_nfts_by_token_id(self, token_id: str, limit: int = 100) -> list[NftItem]:
        """토큰(컬렉션)의 NFT 목록. 실패하면 빈 목록."""
        url = f"{self._base}/tokens/{token_id}/nfts"
        return await self._list_nfts(url, token_id, params={"limit": limit})

    async def get_owned_nfts(self, account_id: str, token_id: str) -> list[NftItem]:
        """계정이 보유한 특정 토큰의 NFT 목록. 실패하면 빈 목록."""
        url = f"{self._base}/accounts/{account_id}/tokens/{token_id}/nfts"
        return await self._list_nfts(url, token_id)

    async def _list_nfts(self, url: str, token_id: str, params: dict | None = None) -> list[NftItem]:
        try:
            data = await self._get_json(url, params=params)
        except Exception as e:
            logger.warning("NFT 목록 조회 실패: %s (%s)", token_id, e)
            return []

        raw_nfts = []
        for raw in data.get("nfts") or []:
            try:
                serial_number = int(raw.get("serial_number"))
            except (AttributeError, TypeError, ValueError):
                logger.warning("잘못된 NFT 항목 건너뜀: %s %r", token_id, raw)
                continue
            raw_nfts.append((serial_number, raw))
        metadata_list = await asyncio.gather(
            *(self.fetch_metadata(raw.get("metadata")) for _, raw in raw_nfts)
        )
        items = []
        for (serial_number, raw), metadata in zip(raw_nfts, metadata_list):
            items.append(NftItem(
                token_id=token_id,
                serial_number=serial_number,
                metadata=metadata,
                image_url=self.gateway_url(metadata.get("image"), PLACEHOLDER_IMAGE),
            ))
        return items

    async def fetch_metadata(self, raw: str | None) -> dict:
        """NFT 메타데이터를 해석한다. URL이면 JSON을 가져오고, 실패하면 빈 dict."""
        if not raw:
            return {}
        try:
            text = decode_metadata_bytes(raw)
        except (ValueError, binascii.Error, UnicodeDecodeError) as e:
            logger.warning("메타데이터 디코딩 실패: %s", e)
            return {}

        if text.startswith("http") or text.startswith("ipfs://"):
            try:
                data = await self._get_json(ipfs_to_gateway(text, self._gateway))
            except Exception as e:
                logger.warning("메타데이터 조회 실패: %s (%s)", text, e)
                return {}
        else:
            try:
                data = json.loads(text)
            except json.JSONDecodeError as e:
                logger.warning("메타데이터 JSON 파싱 실패: %s", e)
                return {}
        return data if isinstance(data, dict) else {}
