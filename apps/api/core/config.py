"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Redis Configuration (entitlement store, caches, rate limits)
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    STORE_RETRY_ATTEMPTS: int = Field(default=3, ge=1, le=10)
    STORE_RETRY_DELAY_S: float = Field(default=0.1)

    # Workout generation providers (OpenAI is primary, Anthropic is the fallback)
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None)
    ANTHROPIC_MODEL: str = Field(default="claude-3-5-sonnet-latest")
    AI_TEMPERATURE: float = Field(default=0.35)
    AI_MAX_TOKENS: int = Field(default=1600)

    # Stripe (receipt verification for upgrades)
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None)

    # Server-to-server subscription verification
    VERIFY_SUBSCRIPTION_API_KEY: Optional[str] = Field(default=None)
    REVENUECAT_API_KEY: Optional[str] = Field(default=None)
    REVENUECAT_API_URL: str = Field(default="https://api.revenuecat.com/v1/subscribers")
    REVENUECAT_ENTITLEMENT_ID: str = Field(default="premium")
    SUBSCRIPTION_CACHE_TTL_S: int = Field(default=600)

    # Tiers and pricing
    FREE_DAILY_WORKOUT_LIMIT: int = Field(default=1, ge=0)
    PREMIUM_MONTHLY_PRICE: str = Field(default="5.99")
    PREMIUM_ANNUAL_PRICE: str = Field(default="59.99")
    PRICING_CURRENCY: str = Field(default="usd")

    # Workout history
    WORKOUT_HISTORY_CAP: int = Field(default=50, ge=1, le=500)
    HISTORY_REQUIRES_PREMIUM: bool = Field(default=True)

    # External API Configuration
    EXTERNAL_API_TIMEOUT: int = Field(default=30)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=60)
    GENERATION_RATE_LIMIT_PER_MINUTE: int = Field(default=10)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)


# Global settings instance
settings = Settings()
