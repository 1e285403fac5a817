from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'comanda_user'
    POSTGRES_PASSWORD: str = 'comanda_pass'
    POSTGRES_DB: str = 'comanda_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Sobrescribe la URL async completa (tests, sqlite)

    # Redis settings
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # JWT settings (tokens emitidos por el servicio externo de autenticación)
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'

    # Store wall clock
    STORE_TIMEZONE: str = 'America/Sao_Paulo'
    SCHEDULE_HORIZON_DAYS: int = 30

    # Checkout rules
    PAYMENT_TOLERANCE: Decimal = Decimal("0.01")
    COUPON_CEILING_MODE: str = "hard"  # hard | soft
    ORDER_NUMBER_PREFIXES: dict = {
        "presencial": "PDV",
        "whatsapp": "WA",
        "loja_online": "PED",
        "totem": "TOT",
        "ifood": "IFD",
    }

    # Notifications
    NOTIFICATIONS_ENABLED: bool = True
    WHATSAPP_GATEWAY_URL: str = 'http://whatsapp-gateway:3000'
    WHATSAPP_GATEWAY_TOKEN: str = ''
    WHATSAPP_GATEWAY_TIMEOUT: int = 10

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def async_database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("NOTIFICATIONS_ENABLED", mode="before")
    @classmethod
    def parse_notifications(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("COUPON_CEILING_MODE")
    @classmethod
    def validate_ceiling_mode(cls, v: str) -> str:
        mode = v.lower().strip()
        if mode not in ("hard", "soft"):
            raise ValueError("COUPON_CEILING_MODE debe ser 'hard' o 'soft'")
        return mode


settings = Settings()
