from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .nxp424 import parse_key


class NtagAuthSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="NTAG424_", env_file=".env", extra="ignore"
    )

    aes_key: Optional[str] = Field(
        default=None, description="Deployment SDM key, 32 hex characters."
    )
    ledger_url: str = Field(default="sqlite+aiosqlite:///./data/ntagauth.sqlite3")
    ledger_timeout: float = Field(default=2.0, gt=0)
    replay_window: int = Field(default=1000, gt=0)

    @field_validator("aes_key")
    @classmethod
    def check_aes_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        parse_key(value)
        return value.upper()

    @property
    def key_bytes(self) -> bytes:
        if not self.aes_key:
            raise ValueError("NTAG424_AES_KEY is not set.")
        return parse_key(self.aes_key)


@lru_cache
def get_settings() -> NtagAuthSettings:
    return NtagAuthSettings()
