from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./unifood.db"
    SQL_ECHO: bool = False
    LOG_LEVEL: str = "INFO"

    # Рабочий день столовой
    TIMEZONE: str = "Asia/Kolkata"
    CLOSING_TIME: str = "22:00"
    SLOT_CAPACITY: int = 20
    SLOT_INTERVAL_MINUTES: int = 15
    SLOT_LEAD_MINUTES: int = 30

    # Оплата
    TAX_RATE: Decimal = Decimal("0.05")
    CURRENCY: str = "INR"
    PAYMENT_TIMEOUT_SECONDS: float = 10.0

    PROFILE_RECOMMENDATION_LIMIT: int = 5
    CART_RECOMMENDATION_LIMIT: int = 3
    # сколько последних заказов смотреть для "с этим заказывали"
    CART_RECOMMENDATION_HISTORY: int = 200
    SEED_SAMPLE_MENU: bool = False

    class Config:
        env_file = ".env"


settings = Settings()
