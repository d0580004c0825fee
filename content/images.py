"""이미지 소스 로더 모듈 — URL / 바이트 / 파일 경로를 RGBA 이미지로 디코딩한다."""

import logging
from io import BytesIO
from pathlib import Path

import aiohttp
from PIL import Image, UnidentifiedImageError

from renderer.errors import ImageLoadError

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY = "https://ipfs.io/ipfs/"
FETCH_TIMEOUT_SEC = 10


def ipfs_to_gateway(uri: str, gateway: str = DEFAULT_GATEWAY) -> str:
    """ipfs:// URI를 공개 게이트웨이 URL로 바꾼다. 그 외는 그대로 반환."""
    if uri.startswith("ipfs://"):
        cid = uri[len("ipfs://"):]
        return gateway.rstrip("/") + "/" + cid
    return uri


def _is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


async def fetch_bytes(url: str, timeout: float = FETCH_TIMEOUT_SEC) -> bytes:
    """URL에서 원본 바이트를 가져온다."""
    async with aiohttp.ClientSession() as session:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
            resp.raise_for_status()
            return await resp.read()


def decode_image(data: bytes) -> Image.Image:
    """바이트를 완전히 디코딩해 RGBA 이미지로 반환한다."""
    img = Image.open(BytesIO(data))
    img.load()
    return img.convert("RGBA")


async def load_image(source) -> Image.Image:
    """이미지 소스를 RGBA 이미지로 디코딩한다.

    source는 http(s) URL 문자열, 파일 경로(str/Path), bytes, 또는 이미
    디코딩된 PIL 이미지일 수 있다. 가져오기나 디코딩에 실패하면
    ImageLoadError를 던진다.
    """
    if isinstance(source, Image.Image):
        return source.convert("RGBA")

    try:
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
        elif isinstance(source, str) and _is_url(source):
            data = await fetch_bytes(source)
        elif isinstance(source, (str, Path)):
            data = Path(source).read_bytes()
        else:
            raise ImageLoadError(source, "지원하지 않는 소스 형식")
        img = decode_image(data)
    except ImageLoadError:
        raise
    except (aiohttp.ClientError, TimeoutError) as e:
        logger.warning("이미지 다운로드 실패: %s (%s)", source, e)
        raise ImageLoadError(source, str(e)) from e
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
        logger.warning("이미지 디코딩 실패: %s (%s)", source if isinstance(source, str) else "<bytes>", e)
        raise ImageLoadError(source, str(e)) from e

    logger.debug("이미지 로드: %dx%d", img.width, img.height)
    return img
