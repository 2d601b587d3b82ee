from decimal import Decimal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "courier-dispatch-jwt-secret"
ALLOWED_APP_MODES = {"demo", "pilot", "production"}
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_name: str = "Courier Dispatch Service"
    app_mode: str = Field(default="demo", validation_alias="DISPATCH_APP_MODE")

    database_url: str = Field(
        default="sqlite+pysqlite:///./test.db",
        validation_alias="DISPATCH_DATABASE_URL",
    )
    testing: bool = Field(default=False, validation_alias="DISPATCH_TESTING")
    auto_create_schema: bool = True
    require_migrations: bool = False
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    jwt_secret: str = DEFAULT_JWT_SECRET
    allowed_roles: str = "CUSTOMER,COURIER,ADMIN"
    enable_test_auth_bypass: bool = False

    commission_amount: Decimal = Field(
        default=Decimal("1.5"),
        validation_alias="DISPATCH_COMMISSION_AMOUNT",
    )
    delivery_fee: Decimal = Decimal("1.5")
    debt_threshold: Decimal = Decimal("50")
    debt_grace_period_h: float = 24.0

    dispatch_response_timeout_s: float = 12.0
    dispatch_max_candidates: int = 5
    dispatch_lock_retention_s: float = 60.0
    dispatch_poll_interval_s: float = 0.25

    notification_webhook_url: str = ""
    notification_timeout_s: float = 2.0
    notification_max_retries: int = 2
    notification_backoff_s: float = 0.2

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"DISPATCH_APP_MODE must be one of: {allowed}")
        return mode

    @field_validator("commission_amount", "delivery_fee", "debt_threshold")
    @classmethod
    def validate_money(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("money settings must not be negative")
        return value

    @field_validator(
        "debt_grace_period_h",
        "dispatch_response_timeout_s",
        "dispatch_lock_retention_s",
        "dispatch_poll_interval_s",
    )
    @classmethod
    def validate_positive_duration(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("durations must be > 0")
        return value

    @field_validator("dispatch_max_candidates")
    @classmethod
    def validate_max_candidates(cls, value: int) -> int:
        if value < 1:
            raise ValueError("dispatch_max_candidates must be >= 1")
        return value


settings = Settings()


def current_commission_amount() -> Decimal:
    """Latest platform commission per order; may change between calls."""
    return settings.commission_amount


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def allowed_roles_list() -> list[str]:
    return [value.strip() for value in settings.allowed_roles.split(",") if value.strip()]


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime uses insecure defaults."""
    if settings.testing:
        return
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET must be set to a non-default value when DISPATCH_TESTING is false"
        )
    if len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            "JWT_SECRET must be at least "
            f"{MIN_SECRET_LENGTH} characters when DISPATCH_TESTING is false"
        )
    if settings.enable_test_auth_bypass:
        raise RuntimeError("ENABLE_TEST_AUTH_BYPASS must be off when DISPATCH_TESTING is false")
    if is_production_mode() and _is_sqlite_url(settings.database_url):
        raise RuntimeError("DISPATCH_DATABASE_URL must use postgres in APP_MODE=production")


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
