"""
토큰 추정 및 비용 계산.

데모 경로와 실제 OpenAI 경로 모두 build_usage_record를 거쳐 UsageRecord를 만든다.
"""

from dataclasses import dataclass
from typing import Mapping

from app.config import ModelPricing
from app.logging_config import logger
from app.models import UsageRecord


@dataclass(frozen=True)
class TokenUsage:
    """한 번의 요청/응답에서 사용된 토큰 수"""
    prompt_tokens: int
    completion_tokens: int

    def __post_init__(self):
        if self.prompt_tokens < 0 or self.completion_tokens < 0:
            raise ValueError("token counts must be non-negative")

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def estimate_tokens(text: str) -> int:
    """텍스트 길이 기반 토큰 추정 (4자당 1토큰, 최소 1)"""
    return max(1, len(text) // 4)


def estimate_cost(
    price_table: Mapping[str, ModelPricing],
    model: str,
    prompt_tokens: int,
    completion_tokens: int
) -> float:
    """
    모델별 1K 토큰 가격으로 비용 계산

    가격표에 없는 모델은 0을 반환한다. 반올림은 하지 않는다 (표시 단계에서 처리).
    """
    pricing = price_table.get(model)
    if pricing is None:
        logger.warning(f"No pricing configured for model: {model}, cost reported as 0")
        return 0.0

    prompt_cost = prompt_tokens / 1000 * pricing.input_per_1k
    completion_cost = completion_tokens / 1000 * pricing.output_per_1k
    return prompt_cost + completion_cost


def build_usage_record(
    price_table: Mapping[str, ModelPricing],
    model: str,
    usage: TokenUsage
) -> UsageRecord:
    """토큰 사용량에 비용을 붙여 응답용 UsageRecord 생성"""
    return UsageRecord(
        prompt_tokens=usage.prompt_tokens,
        completion_tokens=usage.completion_tokens,
        cost=estimate_cost(price_table, model, usage.prompt_tokens, usage.completion_tokens)
    )
