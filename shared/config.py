"""
Runtime configuration, read from environment variables.

Every setting has a default that works for local development: with no
gateway or SMS credentials the service runs against the mock gateways and
logs what it would have sent.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

from shared.models import ChannelType
from shared.phone import PhoneNumberFormat


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Service configuration."""

    # Payment gateway
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    currency: str = "INR"

    # Recipients and routing
    admin_phone: str = ""
    default_country_code: str = "91"
    known_country_codes: list[str] = Field(default_factory=lambda: ["91"])
    national_number_length: int = 10
    admin_channels: list[ChannelType] = Field(default_factory=lambda: [ChannelType.CHAT])
    customer_channels: list[ChannelType] = Field(
        default_factory=lambda: [ChannelType.CHAT, ChannelType.SMS]
    )
    notification_send_timeout: Optional[float] = 45.0

    # Chat session
    chat_ready_timeout: float = 30.0
    chat_connect_timeout: float = 60.0
    chat_max_connect_attempts: int = 3
    chat_retry_delay: float = 5.0
    chat_retry_backoff: str = "fixed"
    chat_discard_credentials: bool = True
    chat_session_dir: str = "./chat-session"

    # SMS gateway
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    sms_from_number: str = ""

    # Storage and HTTP
    order_store_path: Optional[str] = "data/orders.jsonl"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    @property
    def phone_format(self) -> PhoneNumberFormat:
        return PhoneNumberFormat(
            default_country_code=self.default_country_code,
            known_country_codes=tuple(self.known_country_codes),
            national_length=self.national_number_length,
        )

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.sms_from_number)

    @property
    def razorpay_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
            currency=os.getenv("PAYMENT_CURRENCY", "INR"),
            admin_phone=os.getenv("ADMIN_PHONE", ""),
            default_country_code=os.getenv("DEFAULT_COUNTRY_CODE", "91"),
            known_country_codes=_env_list("KNOWN_COUNTRY_CODES", "91"),
            national_number_length=int(os.getenv("NATIONAL_NUMBER_LENGTH", "10")),
            admin_channels=_env_list("ADMIN_CHANNELS", "chat"),
            customer_channels=_env_list("CUSTOMER_CHANNELS", "chat,sms"),
            notification_send_timeout=float(os.getenv("NOTIFICATION_SEND_TIMEOUT", "45")),
            chat_ready_timeout=float(os.getenv("CHAT_READY_TIMEOUT", "30")),
            chat_connect_timeout=float(os.getenv("CHAT_CONNECT_TIMEOUT", "60")),
            chat_max_connect_attempts=int(os.getenv("CHAT_MAX_CONNECT_ATTEMPTS", "3")),
            chat_retry_delay=float(os.getenv("CHAT_RETRY_DELAY", "5")),
            chat_retry_backoff=os.getenv("CHAT_RETRY_BACKOFF", "fixed"),
            chat_discard_credentials=_env_bool("CHAT_DISCARD_CREDENTIALS", "true"),
            chat_session_dir=os.getenv("CHAT_SESSION_DIR", "./chat-session"),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            sms_from_number=os.getenv("SMS_FROM_NUMBER", ""),
            order_store_path=os.getenv("ORDER_STORE_PATH", "data/orders.jsonl") or None,
            cors_origins=_env_list("CORS_ORIGINS", "http://localhost:5173"),
        )


# Module-level singleton for convenience
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them from the environment once."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
