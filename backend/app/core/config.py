from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,  # 环境变量名不区分大小写
    )

    # 日志级别
    log_level: str = "INFO"

    # 数据库配置（可选，默认使用 SQLite；生产环境可用 postgresql+asyncpg://...）
    database_url: str = "sqlite+aiosqlite:///./workspace_digest.db"

    # 对外地址，用于拼接 OAuth 回调地址和前端跳转地址
    api_base_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:5173"

    # Anthropic 摘要接口配置
    anthropic_api_key: str | None = None
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_max_tokens: int = 1024
    http_timeout_seconds: float = 30.0

    # Slack 配置
    slack_client_id: str | None = None
    slack_client_secret: str | None = None
    slack_signing_secret: str | None = None
    slack_bot_token: str | None = None  # 用户未授权时的兜底 Token

    # Asana 配置
    asana_client_id: str | None = None
    asana_client_secret: str | None = None

    # 摘要默认回溯窗口（小时）
    summary_default_hours: int = Field(default=24, ge=1)

    # 严格模式：拒绝超出 blockers 长度的 blockIndex（默认关闭，保持兼容）
    blocker_strict_index: bool = Field(
        default=False,
        description="开启后，blockIndex 超出 blockers 长度时返回参数错误",
        validation_alias="BLOCKER_STRICT_INDEX",
    )

    # 非严格模式下 blockIndex 的上限，避免补齐出超大的 blocker_status
    blocker_max_index: int = Field(
        default=1000,
        ge=1,
        description="blockIndex 大于等于该值时返回参数错误",
        validation_alias="BLOCKER_MAX_INDEX",
    )

    @property
    def slack_redirect_uri(self) -> str:
        return f"{self.api_base_url}/api/auth/slack/oauth/callback"

    @property
    def asana_redirect_uri(self) -> str:
        return f"{self.api_base_url}/api/auth/asana/oauth/callback"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
