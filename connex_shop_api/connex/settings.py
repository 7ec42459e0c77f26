# connex/settings.py
from __future__ import annotations
from typing import List, Optional
from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict
import json

MPESA_SANDBOX_URL = "https://sandbox.safaricom.co.ke"
AT_SANDBOX_URL = "https://api.sandbox.africastalking.com"
AT_LIVE_URL = "https://api.africastalking.com"


def _parse_cors(v: Optional[str | List[str]]) -> List[str]:
    """
    Accept JSON array (e.g. '["http://localhost:3000"]') or
    comma-separated string ('http://localhost:3000,http://127.0.0.1:3000').
    """
    if v is None:
        return ["*"]
    if isinstance(v, list):
        return v
    s = v.strip()
    if not s:
        return ["*"]
    # try JSON first
    try:
        parsed = json.loads(s)
        if isinstance(parsed, list) and all(isinstance(x, str) for x in parsed):
            return parsed
    except ValueError:
        pass
    # fallback: comma separated
    return [p.strip() for p in s.split(",") if p.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",   # ignore unknown env keys instead of raising
    )

    # --- API ---
    api_host: str = Field(default="127.0.0.1", validation_alias=AliasChoices("API_HOST",))
    api_port: int = Field(default=3001,        validation_alias=AliasChoices("API_PORT", "PORT"))
    cors_origins_raw: Optional[str | List[str]] = Field(
        default=None, validation_alias=AliasChoices("CORS_ORIGINS",)
    )
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL",))

    # --- Postgres ---
    database_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DATABASE_URL",)
    )
    db_pool_min: int = Field(default=2, validation_alias=AliasChoices("DB_POOL_MIN",))
    db_pool_max: int = Field(default=10, validation_alias=AliasChoices("DB_POOL_MAX",))

    # --- Auth (tokens are issued elsewhere, we only verify them) ---
    jwt_secret: str = Field(default="change-me", validation_alias=AliasChoices("JWT_SECRET",))
    jwt_algorithm: str = Field(default="HS256", validation_alias=AliasChoices("JWT_ALGORITHM",))

    # --- M-Pesa (Daraja) ---
    mpesa_base_url: str = Field(
        default=MPESA_SANDBOX_URL, validation_alias=AliasChoices("MPESA_BASE_URL",)
    )
    mpesa_consumer_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("MPESA_CONSUMER_KEY",)
    )
    mpesa_consumer_secret: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("MPESA_CONSUMER_SECRET",)
    )
    mpesa_shortcode: str = Field(default="174379", validation_alias=AliasChoices("MPESA_SHORTCODE",))
    mpesa_passkey: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("MPESA_PASSKEY",)
    )
    mpesa_callback_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("MPESA_CALLBACK_URL",)
    )

    # --- Africa's Talking SMS ---
    at_api_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("AT_API_KEY",))
    at_username: str = Field(default="sandbox", validation_alias=AliasChoices("AT_USERNAME",))
    at_sender_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AT_SENDER_ID", "AT_FROM")
    )
    at_base_url_raw: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AT_BASE_URL",)
    )

    # --- Order lifecycle ---
    country_code: str = Field(default="254", validation_alias=AliasChoices("COUNTRY_CODE",))
    pickup_grace_hours: float = Field(
        default=48, validation_alias=AliasChoices("PICKUP_GRACE_HOURS",)
    )
    sweep_interval_seconds: float = Field(
        default=3600, validation_alias=AliasChoices("SWEEP_INTERVAL_SECONDS",)
    )
    sweep_enabled: bool = Field(default=True, validation_alias=AliasChoices("SWEEP_ENABLED",))
    provider_timeout_seconds: float = Field(
        default=30, validation_alias=AliasChoices("PROVIDER_TIMEOUT_SECONDS",)
    )
    shop_name: str = Field(default="Connex Creative", validation_alias=AliasChoices("SHOP_NAME",))

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors(self.cors_origins_raw)

    @property
    def at_base_url(self) -> str:
        if self.at_base_url_raw:
            return self.at_base_url_raw.rstrip("/")
        return AT_SANDBOX_URL if self.at_username == "sandbox" else AT_LIVE_URL


# singleton
settings = Settings()
