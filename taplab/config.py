"""
Configuration management using pydantic-settings.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TAPLAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    state_file: str = "state.json"
    # Only used for addresses and WIF encoding.
    network: Literal["bitcoin", "testnet", "signet", "regtest"] = "regtest"
    log_level: str = "INFO"
    sighash_type: Literal["default", "all", "none", "single"] = "default"


def get_settings() -> Settings:
    return Settings()
