from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"
DEFAULT_ROSTER_PATH = Path(__file__).resolve().parent.parent / "roster.json"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis settings (leaderboard snapshot cache)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20

    # Moderation endpoints are open when unset
    ADMIN_API_KEY: str | None = None

    # =================================================================
    # RELAY SETTINGS
    # =================================================================
    NOSTR_RELAYS: list[str] = [
        "wss://relay.damus.io",
        "wss://relay.primal.net",
        "wss://nos.lol",
        "wss://relay.nostr.band",
    ]
    WORKOUT_EVENT_KIND: int = 1301
    RELAY_CONNECT_TIMEOUT_SECONDS: float = 10.0
    RELAY_QUERY_TIMEOUT_SECONDS: float = 8.0

    # =================================================================
    # COLLECTION SETTINGS
    # =================================================================
    COLLECTION_BATCH_SIZE: int = 2
    COLLECTION_BATCH_PAUSE_SECONDS: float = 0.1
    FALLBACK_THRESHOLD: int = 100
    FALLBACK_LIMITS: list[int] = [100, 200, 500]
    FALLBACK_PAUSE_SECONDS: float = 0.3

    # =================================================================
    # SCORING SETTINGS
    # =================================================================
    DEFAULT_CHARITY_ID: str = "als-foundation"
    CHARITY_NAMES: dict[str, str] = {"als-foundation": "ALS Foundation"}
    ROSTER_PATH: str = str(DEFAULT_ROSTER_PATH)

    # Anti-cheat policy: (min pace s/km, max pace s/km, max distance km, max duration s)
    ANTICHEAT_RUNNING: tuple[float, float, float, int] = (120, 1800, 200, 172800)
    ANTICHEAT_WALKING: tuple[float, float, float, int] = (180, 3600, 100, 86400)
    ANTICHEAT_CYCLING: tuple[float, float, float, int] = (30, 600, 500, 172800)

    # =================================================================
    # REFRESH / CACHE SETTINGS
    # =================================================================
    LEADERBOARD_CACHE_TTL_SECONDS: int = 300
    REFRESH_INTERVAL_MINUTES: int = 5

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_collector_config(self) -> dict:
        """
        Get event collector configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "query_timeout": self.RELAY_QUERY_TIMEOUT_SECONDS,
            "batch_size": self.COLLECTION_BATCH_SIZE,
            "batch_pause": self.COLLECTION_BATCH_PAUSE_SECONDS,
            "fallback_threshold": self.FALLBACK_THRESHOLD,
            "fallback_limits": tuple(self.FALLBACK_LIMITS),
            "fallback_pause": self.FALLBACK_PAUSE_SECONDS,
        }

        if self.environment == "development":
            # Public relays rate-limit aggressive local testing
            config.update({"batch_pause": max(config["batch_pause"], 0.2)})

        return config

    def get_anticheat_limits(self) -> dict[str, tuple[float, float, float, int]]:
        """Anti-cheat limit rows keyed by activity type value."""
        return {
            "running": self.ANTICHEAT_RUNNING,
            "walking": self.ANTICHEAT_WALKING,
            "cycling": self.ANTICHEAT_CYCLING,
        }

    def charity_name(self, charity_id: str) -> str:
        return self.CHARITY_NAMES.get(charity_id, charity_id)


settings = Settings()
