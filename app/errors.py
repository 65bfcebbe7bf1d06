from typing import Optional


class ChatServiceError(Exception):
    """클라이언트에 {error, details?} 형태로 전달되는 에러의 기본 클래스"""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ChatServiceError):
    """요청 형식 오류 (네트워크 호출 전에 검출, 400)"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class UpstreamFailure(ChatServiceError):
    """OpenAI 호출 실패. 원인과 관계없이 하나의 에러 종류로 정규화"""

    status_code = 500


class PayloadTooLarge(ChatServiceError):
    """요청 본문이 server.max_body_bytes 초과 (413)"""

    status_code = 413
