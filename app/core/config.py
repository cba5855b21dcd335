from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from backend project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./booking.db"

    # JWT
    secret_key: str = "change-me"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Scheduling rules
    slot_stride_minutes: int = 15
    # Businesses live on a local calendar; "now" is taken in this zone
    business_timezone: str = "Asia/Jerusalem"
    # Local mobile numbers: 05X followed by 8 digits
    phone_pattern: str = r"^05\d{8}$"
    default_duration_minutes: int = 60
    booking_lock_timeout_seconds: float = 5.0

    # Phone verification
    otp_trust_window_minutes: int = 5
    otp_code_ttl_minutes: int = 10
    otp_resend_interval_seconds: int = 60
    otp_cleanup_interval_seconds: int = 60 * 60
    otp_retention_minutes: int = 24 * 60

    # Rate limits (requests per window, keyed by client address)
    rate_limit_window_seconds: int = 60
    rate_limit_booking: int = 5
    rate_limit_otp_verify: int = 10
    rate_limit_otp_send: int = 5
    rate_limit_slots: int = 30
    # Empty keeps counters in-process; set to share limits across instances
    redis_url: str = ""

    # Env
    env: str = "development"

    # Email (SMTP). Leave smtp_host empty to disable sending.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: str = ""
    from_name: str = "MyTor"
    site_name: str = "MyTor"
    dashboard_url: str = "http://localhost:3000/dashboard"

    # Twilio (OTP delivery). Leave account sid empty to log codes instead.
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    twilio_country_prefix: str = "+972"
    twilio_voice_language: str = "he-IL"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.from_email)

    @property
    def sms_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)


settings = Settings()
