from typing import Any
from app.credentials import extract_api_key, verify_api_key_format
from app.config import Config
from app.errors import ValidationError
from app.models import ChatRequest


def sanitize_message(message: str) -> str:
    """기본적인 XSS 방지: < > 를 HTML 엔티티로 치환 후 앞뒤 공백 제거"""
    return message.replace("<", "&lt;").replace(">", "&gt;").strip()


def _require_object(body: Any) -> dict:
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def validate_chat_request(body: Any, settings: Config) -> ChatRequest:
    """
    채팅 요청 검증 및 정규화

    Args:
        body: 파싱된 JSON 요청 본문
        settings: 애플리케이션 설정 (메시지 길이 제한, 허용 모델 목록)

    Returns:
        ChatRequest: 정제된 메시지를 담은 요청

    Raises:
        ValidationError: 첫 번째로 발견된 잘못된 필드
    """
    body = _require_object(body)

    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("Message is required and must be a string", field="message")

    max_length = settings.limits.max_message_length
    if len(message) > max_length:
        raise ValidationError(f"Message is too long (max {max_length} characters)", field="message")

    model = body.get("model")
    if not isinstance(model, str) or model not in settings.model_ids:
        raise ValidationError("Invalid model selected", field="model")

    demo_mode = bool(body.get("demoMode"))
    api_key = extract_api_key(body)

    if demo_mode:
        # 데모 모드에서는 키를 사용하지 않으므로 전달하지 않음
        api_key = None
    elif api_key is None or api_key == "":
        raise ValidationError("API key is required unless demo mode is enabled", field="apiKey")
    else:
        api_key = verify_api_key_format(api_key)

    return ChatRequest(
        message=sanitize_message(message),
        model=model,
        credential=api_key,
        demo_mode=demo_mode
    )


def validate_key_request(body: Any) -> str:
    """API 키 검증 요청 본문에서 형식이 올바른 키를 반환"""
    body = _require_object(body)
    return verify_api_key_format(extract_api_key(body))
