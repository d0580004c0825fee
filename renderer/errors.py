"""합성 엔진 예외 정의."""


class OverlayzError(Exception):
    """합성 엔진 예외의 기본 클래스."""


class InitializationError(OverlayzError):
    """표시 영역이 없거나 엔진이 초기화되지 않았다."""


class ImageLoadError(OverlayzError):
    """이미지 소스를 가져오거나 디코딩하지 못했다."""

    def __init__(self, source, reason: str = ""):
        self.source = source
        self.reason = reason
        label = source if isinstance(source, str) else type(source).__name__
        message = f"이미지 로드 실패: {label}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class ExportError(OverlayzError):
    """서피스를 내보낼 수 없다."""
