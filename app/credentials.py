import re
from typing import Any, Dict, Optional
from app.errors import ValidationError
from app.logging_config import logger, mask_api_key

# OpenAI 키 형식: sk- 뒤에 영숫자/하이픈/언더스코어 20자 이상
API_KEY_PATTERN = re.compile(r"^sk-[A-Za-z0-9_-]{20,}$")


def is_valid_api_key(api_key: Any) -> bool:
    """API 키 형식 검증 (실제 유효성은 LLMService.check_api_key에서 확인)"""
    return isinstance(api_key, str) and API_KEY_PATTERN.fullmatch(api_key) is not None


def extract_api_key(body: Dict[str, Any]) -> Optional[Any]:
    """요청 본문에서 API 키 추출 (apiKey 우선, credential 별칭 허용)"""
    api_key = body.get("apiKey")
    if api_key is None:
        api_key = body.get("credential")
    return api_key


def verify_api_key_format(api_key: Any) -> str:
    """
    API 키 형식 검증

    Args:
        api_key: 요청 본문의 API 키 값

    Returns:
        검증된 API 키

    Raises:
        ValidationError: 키가 없거나 형식이 맞지 않는 경우
    """
    if not is_valid_api_key(api_key):
        masked = mask_api_key(api_key) if isinstance(api_key, str) else "***"
        logger.warning(f"Invalid API key format: {masked}")
        raise ValidationError("Invalid API key format", field="apiKey")
    return api_key
