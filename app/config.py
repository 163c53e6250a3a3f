"""
Application configuration
"""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings

from qolbuild.config import EngineConfig


class Settings(BaseSettings):
    """Application settings"""

    # API
    API_HOST: str = "127.0.0.1"            # no authentication: keep local unless fronted
    API_PORT: int = 8080
    API_TITLE: str = "qolbuild API"
    API_VERSION: str = "0.1.0"

    # Builds
    BUILD_ROOT: str = "."                  # relative paths and spawned commands resolve here
    BUILD_COMPILER: Optional[str] = None   # overrides the host profile compiler
    RECEIPT_PATH: Optional[str] = None     # last receipt, relative to BUILD_ROOT

    def engine_config(self) -> EngineConfig:
        """Orchestrator config for one request."""
        return EngineConfig(
            workdir=Path(self.BUILD_ROOT),
            compiler=self.BUILD_COMPILER,
            receipt_path=Path(self.RECEIPT_PATH) if self.RECEIPT_PATH else None,
        )

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
