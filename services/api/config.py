"""
Plantwatch — Application Configuration
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "plantwatch"
    APP_ENV: str = "development"
    APP_DEBUG: bool = True
    APP_PORT: int = 8000
    APP_HOST: str = "0.0.0.0"

    # ThingSpeak
    THINGSPEAK_BASE_URL: str = "https://api.thingspeak.com"
    THINGSPEAK_READ_API_KEY: str = ""
    FETCH_TIMEOUT_S: float = 10.0
    FEED_RESULTS: int = 1

    # Channel groups ("permits"), JSON when set from the environment
    CHANNEL_GROUPS: dict[str, list[str]] = {
        "kilns": ["2573701", "2581068"],
        "preheaters": ["2581070", "2581071"],
        "crushers": ["2581072", "2581073"],
    }

    # Polling
    POLL_INTERVAL_S: float = 15.0
    POLL_ENABLED: bool = True
    CLOCK_TICK_S: float = 1.0

    # Status derivation
    POWER_OFF_REPEAT_THRESHOLD: int = 3

    # Scatter plot axes
    PLOT_X_MIN: float = 15.0
    PLOT_X_MAX: float = 18.0
    PLOT_Y_MIN: float = 78.0
    PLOT_Y_MAX: float = 81.0

    # Session gate (UI only, not access control)
    DASHBOARD_USERNAME: str = "user"
    DASHBOARD_PASSWORD: str = "password"
    SESSION_SECRET: str = "dev-session-secret-change-me"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
