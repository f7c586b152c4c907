"""
Signal Copier Configuration

Defaults mirror the production deployment:
- Single leader account (BasedPing_bot)
- Single referral scope (GODSEYE)
- Risk multiplier 0.1x - 2.0x, default 0.5x
- 10 API requests per subscriber per 60s window
- At most 10 signals returned per read
"""

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class CopierConfig(BaseModel):
    """
    Copier configuration.

    BOT_TOKEN and APP_SECRET have no defaults: the relay refuses to start
    without them.
    """

    # Chat platform
    bot_token: str = Field(..., description="Chat bot API token", repr=False)
    leader_username: str = Field(
        "BasedPing_bot", description="Only messages from this sender are treated as signals"
    )
    signal_marker: str = Field(
        "New Trade Alert!", description="Phrase that must appear in a signal message"
    )
    signal_start_marker: str = Field(
        "SIGNAL:", description="Prefix immediately preceding the signal JSON block"
    )
    signal_end_marker: str = Field(
        "</tg-spoiler>", description="Optional suffix closing the signal JSON block"
    )
    webhook_secret_token: Optional[str] = Field(
        None, description="Expected X-Telegram-Bot-Api-Secret-Token header (unset = not checked)", repr=False
    )

    # Authentication
    app_secret: str = Field(..., description="Shared HMAC secret for signal signatures", repr=False)

    # Subscriptions
    referral_code: str = Field("GODSEYE", description="Referral scope that receives broadcasts")
    default_risk: float = Field(0.5, description="Risk multiplier assigned on subscribe")
    min_risk: float = Field(0.1, description="Lowest accepted risk multiplier")
    max_risk: float = Field(2.0, description="Highest accepted risk multiplier")

    # Delivery API
    rate_limit_requests: int = Field(10, description="Requests admitted per window", gt=0)
    rate_limit_window_seconds: float = Field(60.0, description="Rate limit window length", gt=0)
    signals_page_limit: int = Field(10, description="Max signals returned per read", gt=0)
    api_host: str = Field("0.0.0.0", description="HTTP bind address")
    api_port: int = Field(8000, description="HTTP port")

    # Fan-out
    broadcast_workers: int = Field(
        2, description="Worker threads running broadcasts off the webhook path", gt=0
    )

    # Storage
    db_path: str = Field("copier.db", description="SQLite database path")

    # Logging
    log_level: str = Field("INFO", description="Root log level")
    debug: bool = Field(False, description="Flask debug mode")

    @field_validator("leader_username")
    @classmethod
    def strip_at_sign(cls, v: str) -> str:
        """Leader identity is compared without a leading @"""
        return v.lstrip("@").strip()

    @field_validator("app_secret", "bot_token")
    @classmethod
    def require_non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @model_validator(mode="after")
    def validate_risk_bounds(self) -> "CopierConfig":
        """Risk bounds must be ordered and contain the default"""
        if not (0 < self.min_risk <= self.max_risk):
            raise ValueError(
                f"Invalid risk bounds: min_risk={self.min_risk}, max_risk={self.max_risk}"
            )
        if not (self.min_risk <= self.default_risk <= self.max_risk):
            raise ValueError(
                f"default_risk {self.default_risk} outside [{self.min_risk}, {self.max_risk}]"
            )
        return self

    @classmethod
    def from_env(cls) -> "CopierConfig":
        """Load config from environment variables"""

        bot_token = os.getenv("BOT_TOKEN")
        app_secret = os.getenv("APP_SECRET")
        if not bot_token or not app_secret:
            raise ValueError("BOT_TOKEN and APP_SECRET must be set in the environment")

        return cls(
            # Required
            bot_token=bot_token,
            app_secret=app_secret,

            # Optional overrides
            leader_username=os.getenv("LEADER_USERNAME", "BasedPing_bot"),
            webhook_secret_token=os.getenv("WEBHOOK_SECRET_TOKEN") or None,
            referral_code=os.getenv("REFERRAL_CODE", "GODSEYE"),
            default_risk=float(os.getenv("DEFAULT_RISK", "0.5")),
            min_risk=float(os.getenv("MIN_RISK", "0.1")),
            max_risk=float(os.getenv("MAX_RISK", "2.0")),
            rate_limit_requests=int(os.getenv("RATE_LIMIT_REQUESTS", "10")),
            rate_limit_window_seconds=float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")),
            signals_page_limit=int(os.getenv("SIGNALS_PAGE_LIMIT", "10")),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "8000")),
            broadcast_workers=int(os.getenv("BROADCAST_WORKERS", "2")),
            db_path=os.getenv("COPIER_DB_PATH", "copier.db"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            debug=_env_bool("DEBUG"),
        )

    def is_valid_risk(self, risk: float) -> bool:
        """Check a risk multiplier against the configured bounds"""
        return self.min_risk <= risk <= self.max_risk
