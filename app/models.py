from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import List, Optional


class ChatRequest(BaseModel):
    """검증을 통과한 채팅 요청 (요청 단위로만 사용)"""
    model_config = ConfigDict(frozen=True)

    message: str = Field(..., description="정제된 사용자 메시지")
    model: str = Field(..., description="허용 목록에 있는 모델 ID")
    credential: Optional[str] = Field(None, description="사용자 OpenAI API 키 (데모 모드에서는 없음)")
    demo_mode: bool = Field(False, description="데모 모드 여부")


class UsageRecord(BaseModel):
    """토큰 사용량 및 비용. pricing.build_usage_record로만 생성"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    prompt_tokens: int = Field(..., ge=0, alias="promptTokens")
    completion_tokens: int = Field(..., ge=0, alias="completionTokens")
    cost: float = Field(..., ge=0, description="USD, 반올림하지 않음")

    @computed_field(alias="totalTokens")
    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class ChatResponse(BaseModel):
    """채팅 응답 모델"""
    content: str = Field(..., description="모델 응답")
    usage: UsageRecord


class ValidateKeyResponse(BaseModel):
    """API 키 검증 응답 모델"""
    valid: bool
    status: str = Field(..., description="valid 또는 invalid")


class ModelEntry(BaseModel):
    id: str
    name: str


class ModelListResponse(BaseModel):
    """사용 가능한 모델 목록"""
    models: List[ModelEntry]


class ErrorResponse(BaseModel):
    """에러 응답 모델"""
    error: str = Field(..., description="에러 메시지")
    details: Optional[str] = Field(None, description="상세 에러 정보 (production 환경에서는 생략)")
