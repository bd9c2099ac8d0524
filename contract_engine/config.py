from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


SpecVersionSetting = Literal["2.0.0", "3.0.0"]
FileWriteMode = Literal["merge", "overwrite"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="", extra="ignore")

    SERVICE_NAME: str = "contract-engine"
    LOG_LEVEL: str = "INFO"

    # Contract files
    PACT_DIR: str = "pacts"
    PACT_SPEC_VERSION: SpecVersionSetting = "3.0.0"
    PACT_FILE_WRITE_MODE: FileWriteMode = "merge"

    # Consumer-side mock server
    MOCK_SERVICE_HOST: str = "127.0.0.1"
    MOCK_SERVICE_PORT: int = 0  # 0 = ephemeral
    MOCK_STARTUP_TIMEOUT_SECONDS: float = 5.0

    # Provider-side verification
    VERIFY_TIMEOUT_SECONDS: float = 10.0
    PROVIDER_STATES_SETUP_URL: Optional[str] = None

    # Pact broker
    PACT_BROKER_URL: Optional[str] = None
    PACT_BROKER_TOKEN: Optional[str] = None
    PACT_BROKER_USERNAME: Optional[str] = None
    PACT_BROKER_PASSWORD: Optional[str] = None
    PACT_CONSUMER_VERSION: Optional[str] = None
    PACT_PROVIDER_VERSION: Optional[str] = None
    PACT_BRANCH: Optional[str] = None

    def pact_dir_path(self) -> Path:
        return Path(self.PACT_DIR)


def get_settings() -> Settings:
    return Settings()
