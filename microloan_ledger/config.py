"""Configuration management using Pydantic Settings"""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service
    service_name: str = "microloan-ledger"
    log_level: str = "INFO"

    # Calendar: "today" is resolved at this fixed UTC offset (Argentina = -3)
    timezone_offset_hours: int = -3

    # Open-ended ("libre") credits
    open_ended_max_cycles: int = 3
    open_ended_mora_daily_rate: Decimal = Decimal("2.5")  # % per day on unpaid cycle interest
    open_ended_default_rate: Decimal = Decimal("60")  # % per cycle

    # Fixed / progressive credits
    minimum_interest_rate: Decimal = Decimal("60")  # floor of the proportional default rate

    # Refinancing tiers (monthly %)
    refinancing_tier_p1_rate: Decimal = Decimal("25")
    refinancing_tier_p2_rate: Decimal = Decimal("15")

    # Consistency guards
    balance_tolerance: Decimal = Decimal("0.01")


settings = Settings()
