import asyncio
from typing import Tuple
from fastapi import Depends
from app.config import Config, DemoConfig, get_config
from app.logging_config import logger, truncate_message
from app.pricing import TokenUsage, estimate_tokens


class DemoResponder:
    """API 키 없이 UI를 테스트하기 위한 데모 응답 생성기 (네트워크 호출 없음)"""

    def __init__(self, settings: DemoConfig):
        self.settings = settings

    def render(self, model: str) -> str:
        """모델 이름만으로 결정되는 고정 응답"""
        return f"[Demo Mode - {model}]\n{self.settings.notice}"

    async def respond(self, message: str, model: str) -> Tuple[str, TokenUsage]:
        """
        데모 응답 생성

        Args:
            message: 정제된 사용자 메시지
            model: 선택된 모델 ID

        Returns:
            (응답 텍스트, 추정 토큰 사용량)
        """
        logger.info(f"Demo response requested - Model: {model}, Message: {truncate_message(message)}")

        # 네트워크 지연 흉내 (이벤트 루프를 막지 않음)
        await asyncio.sleep(self.settings.delay_seconds)

        content = self.render(model)
        usage = TokenUsage(
            prompt_tokens=estimate_tokens(message),
            completion_tokens=estimate_tokens(content)
        )
        return content, usage


def get_demo_responder(settings: Config = Depends(get_config)) -> DemoResponder:
    """FastAPI 의존성 주입용 DemoResponder 생성"""
    return DemoResponder(settings.demo)
