import os
import yaml
from pathlib import Path
from typing import List, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from dotenv import load_dotenv

# .env 파일 로드
load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


class FrozenModel(BaseModel):
    """설정 값은 프로세스 시작 시 한 번 만들어지고 이후 변경되지 않음"""
    model_config = ConfigDict(frozen=True)


class ServerConfig(FrozenModel):
    host: str
    port: int
    allowed_origins: List[str]
    max_body_bytes: int


class RateLimitConfig(FrozenModel):
    window_seconds: int
    max_requests: int


class LimitsConfig(FrozenModel):
    max_message_length: int


class ModelInfo(FrozenModel):
    id: str
    name: str


class ModelPricing(FrozenModel):
    """1K 토큰당 가격"""
    input_per_1k: float = Field(..., ge=0)
    output_per_1k: float = Field(..., ge=0)


class OpenAIConfig(FrozenModel):
    temperature: float
    max_tokens: int
    timeout: int


class DemoConfig(FrozenModel):
    delay_seconds: float = Field(..., ge=0)
    notice: str


class LoggingConfig(FrozenModel):
    level: str
    # 비어 있으면 콘솔 로그만 사용
    file_path: Optional[str] = None
    max_file_size_mb: int
    backup_count: int
    max_message_length: int


class Config(FrozenModel):
    environment: str = "development"
    server: ServerConfig
    rate_limit: RateLimitConfig
    limits: LimitsConfig
    models: List[ModelInfo]
    pricing: Dict[str, ModelPricing]
    openai: OpenAIConfig
    demo: DemoConfig
    logging: LoggingConfig

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def model_ids(self) -> List[str]:
        """허용된 모델 ID 목록 (모델 목록과 같은 값을 사용)"""
        return [model.id for model in self.models]


def _allowed_origins_from_env(defaults: List[str]) -> List[str]:
    """프론트엔드 / Vercel 배포 주소를 CORS 허용 목록에 반영"""
    origins = [os.getenv("FRONTEND_URL") or defaults[0]] + defaults[1:]
    for name in ("VERCEL_URL", "VERCEL_BRANCH_URL"):
        value = os.getenv(name)
        if value:
            origins.append(f"https://{value}")
    return origins


def load_config(config_path: Optional[str] = None) -> Config:
    """YAML 설정 파일 로드 후 환경변수 값을 덮어씀"""
    if config_path is None:
        config_path = os.getenv("APP_CONFIG_PATH", str(DEFAULT_CONFIG_PATH))

    with open(config_path, 'r', encoding='utf-8') as f:
        config_dict = yaml.safe_load(f)

    config_dict["environment"] = os.getenv("APP_ENV", config_dict.get("environment", "development"))

    server = config_dict["server"]
    server["host"] = os.getenv("HOST", server["host"])
    server["port"] = int(os.getenv("PORT", server["port"]))
    server["allowed_origins"] = _allowed_origins_from_env(server["allowed_origins"])

    rate_limit = config_dict["rate_limit"]
    rate_limit["window_seconds"] = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", rate_limit["window_seconds"]))
    rate_limit["max_requests"] = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", rate_limit["max_requests"]))

    log_settings = config_dict["logging"]
    log_settings["level"] = os.getenv("LOG_LEVEL", log_settings["level"])
    log_settings["file_path"] = os.getenv("LOG_FILE_PATH", log_settings.get("file_path")) or None

    return Config(**config_dict)


# 전역 설정 인스턴스
config = load_config()


def get_config() -> Config:
    """FastAPI 의존성 주입용 설정 반환 (테스트에서 override 가능)"""
    return config
