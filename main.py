from fastapi import FastAPI, Depends, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from datetime import datetime
from app.models import ChatResponse, ValidateKeyResponse, ModelListResponse, ModelEntry, ErrorResponse
from app.config import Config, config, get_config
from app.demo import DemoResponder, get_demo_responder
from app.errors import ChatServiceError, PayloadTooLarge, UpstreamFailure, ValidationError
from app.llm_service import KeyStatus, LLMService, get_llm_service
from app.logging_config import logger, mask_api_key, setup_logging
from app.pricing import build_usage_record
from app.rate_limiter import enforce_rate_limit, get_client_ip
from app.validation import validate_chat_request, validate_key_request
import json
import uvicorn

# 로거 구성 (file_path가 비어 있으면 콘솔 JSON 로그만)
setup_logging(config)

# FastAPI 애플리케이션 생성
app = FastAPI(
    title="AI Chat Proxy API",
    description="브라우저 채팅 클라이언트용 OpenAI 프록시 (API 키는 서버에 저장하지 않음)",
    version="1.0.0"
)

# CORS 설정: 프론트엔드 / Vercel 배포 주소만 허용
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.server.allowed_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-XSS-Protection": "0",
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    413: {"model": ErrorResponse, "description": "Request body too large"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Internal server error"}
}


def _current_settings(request: Request) -> Config:
    """예외 핸들러/미들웨어에서 사용할 설정 (의존성 override 반영)"""
    provider = request.app.dependency_overrides.get(get_config, get_config)
    return provider()


def _error_response(request: Request, status_code: int, error: str, details: str = None) -> JSONResponse:
    """{error, details?} 형태의 에러 응답. production 환경에서는 details 생략"""
    body = ErrorResponse(error=error)
    if details and not _current_settings(request).is_production:
        body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.middleware("http")
async def guard_requests(request: Request, call_next):
    """요청 크기 제한, 개발 환경 요청 로그, 보안 헤더"""
    settings = _current_settings(request)

    if not settings.is_production:
        logger.info(f"{datetime.now().isoformat()} - {request.method} {request.url.path}")

    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > settings.server.max_body_bytes:
        logger.warning(f"Request body too large - IP: {get_client_ip(request)}, Size: {content_length}")
        response = _error_response(request, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "Request body too large")
    else:
        response = await call_next(request)

    return _apply_security_headers(response)


def _apply_security_headers(response):
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


async def _read_json(request: Request, settings: Config):
    """본문을 스트리밍으로 읽으며 크기 제한 적용 (Content-Length 없는 chunked 요청 포함)"""
    limit = settings.server.max_body_bytes
    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            logger.warning(f"Request body too large - IP: {get_client_ip(request)}, Received: {received}+")
            raise PayloadTooLarge("Request body too large")
        chunks.append(chunk)

    try:
        return json.loads(b"".join(chunks))
    except ValueError:
        raise ValidationError("Request body must be valid JSON")


@app.get("/")
async def root():
    """헬스 체크 엔드포인트"""
    return {"status": "healthy", "service": "AI Chat Proxy API"}


@app.post(
    "/api/chat",
    response_model=ChatResponse,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(enforce_rate_limit)]
)
async def chat(
    request: Request,
    settings: Config = Depends(get_config),
    llm_service: LLMService = Depends(get_llm_service),
    demo_responder: DemoResponder = Depends(get_demo_responder)
):
    """
    채팅 엔드포인트

    검증 → (데모 응답 | OpenAI 호출) → 비용 계산 순서로 처리한다.
    검증 실패 시 네트워크 호출 없이 400을 반환한다.
    """
    start_time = datetime.now()
    client_ip = get_client_ip(request)

    chat_request = validate_chat_request(await _read_json(request, settings), settings)

    try:
        logger.info(
            f"Chat request - IP: {client_ip}, Model: {chat_request.model}, "
            f"Demo: {chat_request.demo_mode}, API Key: {mask_api_key(chat_request.credential)}"
        )

        if chat_request.demo_mode:
            content, tokens = await demo_responder.respond(chat_request.message, chat_request.model)
        else:
            content, tokens = await llm_service.chat_completion(
                api_key=chat_request.credential,
                message=chat_request.message,
                model=chat_request.model
            )

        usage = build_usage_record(settings.pricing, chat_request.model, tokens)

        elapsed_time = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Chat response - IP: {client_ip}, Model: {chat_request.model}, "
            f"Tokens used: {usage.total_tokens}, Cost: {usage.cost}, "
            f"Response time: {elapsed_time:.2f}s"
        )

        return ChatResponse(content=content, usage=usage)

    except UpstreamFailure as e:
        raise ChatServiceError("Failed to process chat message", details=e.message)

    except Exception as e:
        logger.error(f"Unexpected error in chat endpoint - IP: {client_ip}, Error: {str(e)}")
        raise ChatServiceError("Failed to process chat message", details=str(e))


@app.post(
    "/api/validate-key",
    response_model=ValidateKeyResponse,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(enforce_rate_limit)]
)
async def validate_key(
    request: Request,
    settings: Config = Depends(get_config),
    llm_service: LLMService = Depends(get_llm_service)
):
    """
    OpenAI API 키 검증 엔드포인트

    키가 거부되면 valid=false, 확인 자체가 실패하면 500을 반환한다.
    """
    api_key = validate_key_request(await _read_json(request, settings))

    result = await llm_service.check_api_key(api_key)
    if result.status == KeyStatus.INDETERMINATE:
        raise ChatServiceError("Failed to validate API key", details=result.reason)

    return ValidateKeyResponse(valid=result.status == KeyStatus.VALID, status=result.status.value)


@app.get(
    "/api/models",
    response_model=ModelListResponse,
    dependencies=[Depends(enforce_rate_limit)]
)
async def list_models(settings: Config = Depends(get_config)):
    """사용 가능한 모델 목록 (고정)"""
    return ModelListResponse(models=[ModelEntry(id=m.id, name=m.name) for m in settings.models])


@app.exception_handler(ChatServiceError)
async def chat_service_exception_handler(request: Request, exc: ChatServiceError):
    """검증 / OpenAI 에러 핸들러"""
    if isinstance(exc, ValidationError):
        logger.warning(f"Validation failed - IP: {get_client_ip(request)}, Field: {exc.field}, Error: {exc.message}")
    else:
        logger.error(f"Request failed - IP: {get_client_ip(request)}, Error: {exc.message}, Details: {exc.details}")
    return _error_response(request, exc.status_code, exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """HTTP 예외 핸들러"""
    error = "Not found" if exc.status_code == status.HTTP_404_NOT_FOUND else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": error},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """일반 예외 핸들러 (프로세스는 종료하지 않음)"""
    logger.exception(f"Unhandled exception: {str(exc)}")
    # ServerErrorMiddleware는 guard_requests 바깥에서 실행되므로 헤더를 직접 추가
    return _apply_security_headers(_error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred" if _current_settings(request).is_production else "Internal server error",
        str(exc)
    ))


if __name__ == "__main__":
    logger.info(f"Server running on port {config.server.port}")
    logger.info(f"Environment: {config.environment}")

    # 역방향 프록시 뒤에서 실행할 때 클라이언트 IP를 얻기 위해 필요
    uvicorn.run(app, host=config.server.host, port=config.server.port, proxy_headers=True)
