"""지갑 공급자 인터페이스."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import StrEnum

logger = logging.getLogger(__name__)


class WalletEvent(StrEnum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    ACCOUNTS_CHANGED = "accountsChanged"
    CHAIN_CHANGED = "chainChanged"


class WalletError(Exception):
    """지갑 연결 실패."""


class WalletProvider(ABC):
    """계정 연결 수명주기를 제공하는 지갑 공급자.

    합성 엔진은 지갑을 직접 호출하지 않는다. 표시 계층만 사용한다.
    """

    def __init__(self):
        self._handlers: dict[WalletEvent, list[Callable]] = {kind: [] for kind in WalletEvent}

    def on_event(self, kind: WalletEvent | str, handler: Callable) -> None:
        """이벤트 핸들러를 등록한다."""
        self._handlers[WalletEvent(kind)].append(handler)

    def _emit(self, kind: WalletEvent, *args) -> None:
        for handler in list(self._handlers[kind]):
            try:
                handler(*args)
            except Exception:
                logger.exception("지갑 이벤트 핸들러 오류: %s", kind)

    @abstractmethod
    async def init(self) -> None:
        """공급자를 준비한다. 이전 세션이 있으면 복원할 수 있다."""

    @abstractmethod
    async def connect(self) -> str:
        """연결하고 계정 ID를 반환한다."""

    @abstractmethod
    async def disconnect(self) -> None:
        """연결을 끊는다."""

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def get_account(self) -> str | None:
        pass
