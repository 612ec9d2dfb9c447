from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"  # local | staging | production
    APP_NAME: str = "authgate"
    APP_DOMAIN: str = "localhost"

    JWT_SECRET: str = "change_me_jwt"
    JWT_TTL_MINUTES: int = 60 * 24
    AUTH_COOKIE_NAME: str = "authToken"

    CORS_ORIGINS: str = "http://localhost:3000"

    DATABASE_URL: str = "sqlite+pysqlite:///./authgate.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    OTP_CODE_LENGTH: int = 6
    OTP_MAX_ATTEMPT: int = 3
    OTP_MAX_RETRIES: int = 3
    OTP_RESEND_TIMEOUT_SECONDS: int = 60
    OTP_BLOCK_TIMEOUT_SECONDS: int = 3600
    OTP_DEFAULT_CODE: str = "123456"
    OTP_LOCK_BACKEND: str = "memory"  # memory | redis
    OTP_LOCK_TIMEOUT_SECONDS: int = 10

    PASSWORD_SALT_LENGTH: int = 16
    PASSWORD_HASH_LENGTH: int = 64

    SMS_PROVIDER: str = "dummy"  # dummy | smsaero
    SMSAERO_EMAIL: str = ""
    SMSAERO_API_KEY: str = ""
    OTP_SMS_TEMPLATE: str = "Your verification code is {code}. It expires in {expiration}."

    EMAIL_PROVIDER: str = "dummy"  # dummy | smtp | service
    EMAIL_SERVICE_URL: str = "http://email-service:8010"
    INTERNAL_SERVICE_TOKEN: str = "change_me_internal_service_token"
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False

    ADMIN_SEED_EMAIL: str = "admin@example.com"
    ADMIN_SEED_PASSWORD: str = "admin123"
    ADMIN_SEED_FIRSTNAME: str = "System"
    ADMIN_SEED_LASTNAME: str = "Administrator"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def is_production_app(self) -> bool:
        return str(self.APP_ENV or "").strip().lower() == "production"

settings = Settings()
