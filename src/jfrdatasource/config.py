"""Service configuration and logging setup."""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

ENV_UPLOAD_DIR = "JFR_DATASOURCE_UPLOAD_DIR"
ENV_LOG_LEVEL = "JFR_DATASOURCE_LOG_LEVEL"

VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _default_upload_dir() -> Path:
    return Path(tempfile.gettempdir()) / "jfr-file-uploads"


@dataclass(frozen=True)
class DatasourceConfig:
    """Datasource service settings.

    Attributes:
        upload_dir: Directory where uploaded recordings are stored.
        log_level: Level name for the jfrdatasource logger.
    """

    upload_dir: Path = field(default_factory=_default_upload_dir)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        level = self.log_level.upper()
        if level not in VALID_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level!r}")
        object.__setattr__(self, "log_level", level)
        object.__setattr__(self, "upload_dir", Path(self.upload_dir))

    @classmethod
    def from_env(cls) -> "DatasourceConfig":
        """Build configuration from JFR_DATASOURCE_* environment variables."""
        upload_dir = os.environ.get(ENV_UPLOAD_DIR)
        return cls(
            upload_dir=Path(upload_dir) if upload_dir else _default_upload_dir(),
            log_level=os.environ.get(ENV_LOG_LEVEL, "INFO"),
        )


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stream handler to the package logger, once.

    Returns:
        The jfrdatasource logger.
    """
    logger = logging.getLogger("jfrdatasource")
    logger.setLevel(level)
    if not any(getattr(h, "_jfrdatasource", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._jfrdatasource = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
