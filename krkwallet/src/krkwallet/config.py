"""
Configuration management using pydantic-settings.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from krkcore.constants import (
    BLOCKS_PER_DAEMON_REQUEST,
    DAEMON_UPDATE_INTERVAL,
    DEFAULT_DAEMON_PORT,
    MINED_MONEY_UNLOCK_WINDOW,
    SCAN_THREAD_INTERVAL,
    SYNC_THREAD_INTERVAL,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    daemon_host: str = "127.0.0.1"
    daemon_port: int = Field(default=DEFAULT_DAEMON_PORT, ge=1, le=65535)
    daemon_ssl: bool = False
    request_timeout: float = Field(default=10.0, gt=0)

    fetch_interval: float = Field(default=SYNC_THREAD_INTERVAL, gt=0)
    height_poll_interval: float = Field(default=DAEMON_UPDATE_INTERVAL, gt=0)
    scan_interval: float = Field(default=SCAN_THREAD_INTERVAL, gt=0)

    start_height: int = Field(default=0, ge=0)
    unlock_confirmations: int = Field(default=MINED_MONEY_UNLOCK_WINDOW, ge=0)
    block_count: int = Field(default=BLOCKS_PER_DAEMON_REQUEST, ge=1)
    skip_coinbase_transactions: bool = False

    log_level: str = "INFO"

    @property
    def daemon_url(self) -> str:
        scheme = "https" if self.daemon_ssl else "http"
        return f"{scheme}://{self.daemon_host}:{self.daemon_port}"


def get_settings() -> Settings:
    return Settings()
