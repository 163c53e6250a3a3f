"""
Engine configuration

``EngineSettings`` reads ``QOLBUILD_*`` environment variables (and an
optional ``.env`` file); ``EngineConfig`` is the explicit object handed
to the orchestrator.  Nothing in the engine reads the environment on its
own apart from the self-rebuild guard.
"""
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from qolbuild.log import LogConfig, parse_level


class EngineConfig(BaseModel):
    """Per-orchestrator configuration."""

    workdir: Path = Path(".")
    compiler: Optional[str] = None          # overrides the profile compiler
    receipt_path: Optional[Path] = None     # write the receipt here on finish()
    log_level: int = logging.INFO
    log_color: bool = False
    log_time: bool = True
    log_file: Optional[str] = None
    log_exit_on_error: bool = False         # ERROR exits 1, CRITICAL aborts

    def log_config(self) -> LogConfig:
        return LogConfig(
            level=self.log_level,
            color=self.log_color,
            timestamps=self.log_time,
            file=self.log_file,
            exit_on_error=self.log_exit_on_error,
        )


class EngineSettings(BaseSettings):
    """Environment-driven settings"""

    model_config = SettingsConfigDict(
        env_prefix="QOLBUILD_",
        env_file=".env",
        extra="ignore",
        case_sensitive=True,
    )

    LOG_LEVEL: str = "INFO"
    LOG_COLOR: bool = False
    LOG_TIME: bool = True
    LOG_FILE: Optional[str] = None
    LOG_EXIT_ON_ERROR: bool = False

    WORKDIR: str = "."
    COMPILER: Optional[str] = None
    RECEIPT_PATH: Optional[str] = None

    def to_engine_config(self) -> EngineConfig:
        """Build the explicit orchestrator config from these settings."""
        return EngineConfig(
            workdir=Path(self.WORKDIR),
            compiler=self.COMPILER,
            receipt_path=Path(self.RECEIPT_PATH) if self.RECEIPT_PATH else None,
            log_level=parse_level(self.LOG_LEVEL),
            log_color=self.LOG_COLOR,
            log_time=self.LOG_TIME,
            log_file=self.LOG_FILE,
            log_exit_on_error=self.LOG_EXIT_ON_ERROR,
        )
