from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PUBLIC_DIR = Path(__file__).resolve().parent / "public"

# ------------ Config ------------
SUBSCRIBER_QUEUE_SIZE = 50    # bounded per-subscriber queue
HEARTBEAT_INTERVAL = 15.0     # seconds of idle before an SSE ": ping" comment, 0 disables
# --------------------------------


class Settings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 3000

    subscriber_queue_size: int = SUBSCRIBER_QUEUE_SIZE
    heartbeat_interval: float = HEARTBEAT_INTERVAL

    log_level: str = "INFO"
    public_dir: Path = PUBLIC_DIR

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
