from decimal import Decimal
from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]
_DEFAULT_CHECKIN = "0.02,0.04,0.06,0.08,0.10,0.12,0.15"
_DEFAULT_REFERRAL_CATEGORIES = "task_credit,external_postback,checkin,follow_reward"


def _split_list(v: Any, default: List[str]) -> List[str]:
    """Accept a list, a JSON list or a comma-separated string."""
    try:
        if v is None or v == "":
            return default.copy()
        if isinstance(v, list):
            return [str(x).strip() for x in v if str(x).strip()]
        s = str(v).strip()
        if not s:
            return default.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [str(x).strip() for x in out if str(x).strip()] or default.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or default.copy()
    except Exception:
        return default.copy()


def _parse_checkin_amounts(v: Any) -> List[Decimal]:
    """Seven daily amounts; extra values dropped, missing ones paid as zero."""
    out: List[Decimal] = []
    for raw in _split_list(v, _DEFAULT_CHECKIN.split(",")):
        try:
            out.append(Decimal(raw))
        except ArithmeticError:
            out.append(Decimal("0"))
    out = out[:7]
    while len(out) < 7:
        out.append(Decimal("0"))
    return out


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    dev_mode: bool = Field(default=False, alias="DEV_MODE", description="Skip initData verification")
    allow_client_fallback: bool = Field(default=False, alias="ALLOW_CLIENT_FALLBACK")

    # Store
    store_backend: str = Field(default="mongo", alias="STORE_BACKEND")
    mongodb_uri: str = Field(default="mongodb://localhost:27017/?replicaSet=rs0", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="w2e", alias="MONGODB_DB_NAME")

    # Redis (ARQ worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Telegram
    bot_token: str = Field(default="", alias="BOT_TOKEN")
    bot_username: str = Field(default="", alias="BOT_USERNAME")
    telegram_api_base: str = Field(default="https://api.telegram.org", alias="TELEGRAM_API_BASE")
    init_data_ttl_seconds: int = Field(default=86400, alias="INIT_DATA_TTL_SECONDS")
    channel_id: int | None = Field(default=None, alias="CHANNEL_ID")
    channel_username: str = Field(default="", alias="CHANNEL_USERNAME")

    # Shared secrets
    postback_token: str = Field(default="", alias="POSTBACK_TOKEN")
    admin_token: str = Field(default="", alias="ADMIN_TOKEN")

    # Ads
    vast_tag: str = Field(default="", alias="VAST_TAG")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    # Rewards
    min_withdraw: Decimal = Field(default=Decimal("1"), alias="MIN_WITHDRAW")
    reward_per_task: Decimal = Field(default=Decimal("0.01"), alias="REWARD_PER_TASK")
    ref_bonus_pct: Decimal = Field(default=Decimal("10"), alias="REF_BONUS_PCT")
    follow_reward: Decimal = Field(default=Decimal("0.01"), alias="FOLLOW_REWARD")
    checkin_amounts_raw: str = Field(default=_DEFAULT_CHECKIN, alias="CHECKIN_AMOUNTS")
    referral_categories_raw: str = Field(default=_DEFAULT_REFERRAL_CATEGORIES, alias="REFERRAL_CATEGORIES")

    @property
    def cors_origins(self) -> List[str]:
        return _split_list(getattr(self, "cors_origins_raw", None), _DEFAULT_CORS)

    @property
    def checkin_amounts(self) -> List[Decimal]:
        return _parse_checkin_amounts(self.checkin_amounts_raw)

    @property
    def referral_categories(self) -> List[str]:
        return _split_list(self.referral_categories_raw, _DEFAULT_REFERRAL_CATEGORIES.split(","))


@lru_cache
def get_settings() -> Settings:
    return Settings()
