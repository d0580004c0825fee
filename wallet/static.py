"""고정 계정 지갑 — 설정된 계정 ID로 읽기 전용 연결을 흉내 낸다."""

import logging

from .base import WalletError, WalletEvent, WalletProvider

logger = logging.getLogger(__name__)


class StaticAccountWallet(WalletProvider):
    """서명 없이 계정 ID만 제공하는 지갑."""

    def __init__(self, account_id: str = "", network: str = "mainnet"):
        super().__init__()
        self._account_id = account_id
        self._network = network
        self._connected = False

    @property
    def network(self) -> str:
        return self._network

    async def init(self) -> None:
        logger.info("지갑 준비: %s (%s)", self._account_id or "계정 없음", self._network)

    async def connect(self) -> str:
        if not self._account_id:
            raise WalletError("연결할 계정 ID가 없음")
        if not self._connected:
            self._connected = True
            logger.info("지갑 연결: %s", self._account_id)
            self._emit(WalletEvent.CONNECT, self._account_id)
        return self._account_id

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        logger.info("지갑 연결 해제: %s", self._account_id)
        self._emit(WalletEvent.DISCONNECT)

    def is_connected(self) -> bool:
        return self._connected

    def get_account(self) -> str | None:
        return self._account_id if self._connected else None

    def switch_account(self, account_id: str) -> None:
        """계정을 바꾸고 accountsChanged 이벤트를 보낸다."""
        self._account_id = account_id
        if self._connected:
            self._emit(WalletEvent.ACCOUNTS_CHANGED, [account_id])

    def switch_network(self, network: str) -> None:
        """네트워크를 바꾸고 chainChanged 이벤트를 보낸다."""
        self._network = network
        self._emit(WalletEvent.CHAIN_CHANGED, network)
