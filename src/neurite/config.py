"""
Runtime settings and logging configuration.

Settings are read from environment variables, optionally seeded from a
`.env` file through python-dotenv:

- ``NEURITE_WORKERS``   : worker threads used by optimizers (default: CPU count,
  capped at 8)
- ``NEURITE_SEED``      : default seed for `Sequential` graphs (default: unset)
- ``NEURITE_LOG_LEVEL`` : level passed to `configure_logging` (default: WARNING)

Values already present in the environment take precedence over the `.env`
file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Union

from dotenv import find_dotenv, load_dotenv

from .domain._errors import ConfigurationError

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _default_workers() -> int:
    return max(1, min(8, os.cpu_count() or 1))


@dataclass(frozen=True)
class Settings:
    """
    Process-wide defaults.

    Attributes
    ----------
    workers : int
        Size of the optimizer's thread pool.
    seed : int | None
        Default graph seed.
    log_level : str
        Logging level name.
    """

    workers: int = 1
    seed: Optional[int] = None
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")
        if logging.getLevelName(self.log_level.upper()) == f"Level {self.log_level.upper()}":
            raise ConfigurationError(f"Unknown log level {self.log_level!r}")


def _read_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def load_settings(env_file: Optional[Union[str, os.PathLike]] = None) -> Settings:
    """
    Build `Settings` from the environment.

    Parameters
    ----------
    env_file : str | PathLike | None, optional
        Path of a `.env` file to load first. When omitted, a `.env` file is
        searched for from the current working directory upward.

    Raises
    ------
    ConfigurationError
        If a variable holds an invalid value.
    """
    path = os.fspath(env_file) if env_file is not None else find_dotenv(usecwd=True)
    if path:
        load_dotenv(path, override=False)
        logger.debug("Loaded environment from %s", path)

    return Settings(
        workers=_read_int("NEURITE_WORKERS", _default_workers()),
        seed=_read_int("NEURITE_SEED", None),
        log_level=os.getenv("NEURITE_LOG_LEVEL", "WARNING").strip() or "WARNING",
    )


def configure_logging(level: Union[int, str, None] = None) -> None:
    """
    Attach a stream handler to the ``neurite`` logger.

    Libraries should not call this; it is a convenience for applications and
    scripts. Calling it again only updates the level.

    Parameters
    ----------
    level : int | str | None, optional
        Logging level. Defaults to `Settings.log_level`.
    """
    if level is None:
        level = load_settings().log_level
    if isinstance(level, str):
        level = level.upper()

    root = logging.getLogger("neurite")
    root.setLevel(level)
    if not any(getattr(h, "_neurite", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._neurite = True
        root.addHandler(handler)
