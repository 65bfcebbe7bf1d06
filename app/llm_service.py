from openai import OpenAI, OpenAIError, AuthenticationError, PermissionDeniedError
from dataclasses import dataclass
from enum import Enum
from typing import Tuple
import asyncio
from fastapi import Depends
from app.config import Config, OpenAIConfig, get_config
from app.errors import UpstreamFailure
from app.logging_config import logger, mask_api_key, truncate_message
from app.pricing import TokenUsage

DEFAULT_UPSTREAM_ERROR = "Failed to get response from OpenAI"


class KeyStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    # 키 문제인지 일시적인 장애인지 판단할 수 없는 경우
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class KeyCheck:
    status: KeyStatus
    reason: str = ""


def _provider_message(error: Exception) -> str:
    """OpenAI 에러 메시지가 있으면 그대로, 없으면 기본 메시지"""
    message = getattr(error, "message", None)
    return message or DEFAULT_UPSTREAM_ERROR


class LLMService:
    """OpenAI API 호출 서비스

    클라이언트는 호출마다 사용자 API 키로 새로 만들고 보관하지 않는다.
    """

    def __init__(self, settings: OpenAIConfig):
        self.settings = settings

    def _create_client(self, api_key: str) -> OpenAI:
        # 재시도 없음: 실패는 그대로 호출자에게 전달
        return OpenAI(api_key=api_key, timeout=self.settings.timeout, max_retries=0)

    async def chat_completion(self, api_key: str, message: str, model: str) -> Tuple[str, TokenUsage]:
        """
        일반 채팅 완성 (한 번에 전체 응답)

        Args:
            api_key: 사용자 OpenAI API 키
            message: 정제된 사용자 메시지
            model: 모델 ID

        Returns:
            (응답 텍스트, 토큰 사용량)

        Raises:
            UpstreamFailure: OpenAI 호출 또는 응답 파싱 실패
        """
        try:
            logger.info(
                f"Requesting chat completion - API Key: {mask_api_key(api_key)}, "
                f"Model: {model}, Message: {truncate_message(message)}"
            )

            client = self._create_client(api_key)
            response = await asyncio.to_thread(
                client.chat.completions.create,
                model=model,
                messages=[{"role": "user", "content": message}],
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature
            )

            if not response.choices or response.usage is None:
                raise UpstreamFailure("Malformed response from OpenAI")

            response_text = response.choices[0].message.content or ""
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens
            )

            logger.info(
                f"Chat completion successful - "
                f"Response length: {len(response_text)}, Tokens used: {usage.total_tokens}"
            )

            return response_text, usage

        except UpstreamFailure as e:
            logger.error(f"OpenAI API error: {e.message}")
            raise
        except OpenAIError as e:
            logger.error(f"OpenAI API error: {str(e)}")
            raise UpstreamFailure(_provider_message(e))
        except Exception as e:
            logger.error(f"Unexpected error during chat completion: {str(e)}")
            raise UpstreamFailure(DEFAULT_UPSTREAM_ERROR)

    async def check_api_key(self, api_key: str) -> KeyCheck:
        """
        모델 목록 조회로 API 키 유효성 확인 (예외를 던지지 않음)

        Returns:
            KeyCheck: 인증 실패는 INVALID, 그 외 실패는 INDETERMINATE
        """
        try:
            client = self._create_client(api_key)
            await asyncio.to_thread(client.models.list)
            logger.info(f"API key validated: {mask_api_key(api_key)}")
            return KeyCheck(KeyStatus.VALID)

        except (AuthenticationError, PermissionDeniedError) as e:
            logger.warning(f"API key rejected by OpenAI: {mask_api_key(api_key)} - {str(e)}")
            return KeyCheck(KeyStatus.INVALID, _provider_message(e))
        except Exception as e:
            logger.error(f"API key validation error: {mask_api_key(api_key)} - {str(e)}")
            return KeyCheck(KeyStatus.INDETERMINATE, _provider_message(e))


def get_llm_service(settings: Config = Depends(get_config)) -> LLMService:
    """FastAPI 의존성 주입용 LLMService 생성"""
    return LLMService(settings.openai)
