from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .audio import SAMPLE_RATE
from .errors import InvalidSettingsError
from .graph import DEFAULT_BLOCK_SIZE
from .params import DEFAULT_SUB_GAIN

_LOGGER = logging.getLogger("synesthesia.config")

LOG_FILE = "synesthesia.log"

# Environment variable -> EngineSettings field
_ENGINE_ENV_FIELDS: Mapping[str, str] = MappingProxyType(
    {
        "SYNESTHESIA_SAMPLE_RATE": "sample_rate",
        "SYNESTHESIA_BLOCK_SIZE": "block_size",
        "SYNESTHESIA_MASTER_LEVEL": "master_level",
    }
)

# Environment variable -> LogSettings field
_LOG_ENV_FIELDS: Mapping[str, str] = MappingProxyType(
    {
        "SYNESTHESIA_LOG_DIR": "log_dir",
        "SYNESTHESIA_DEBUG": "debug",
    }
)

SettingsT = TypeVar("SettingsT", bound=BaseModel)


class EngineSettings(BaseModel):
    """Timing and level constants for the voice engine."""

    sample_rate: int = Field(default=SAMPLE_RATE, gt=0)
    block_size: int = Field(default=DEFAULT_BLOCK_SIZE, gt=0)
    master_level: float = Field(default=0.3, ge=0, le=1)
    # Seconds past the end of a voice before its nodes are torn down.
    disposal_grace: float = Field(default=0.5, ge=0)
    # Fraction of the voice duration at which an operator's depth decay lands.
    index_decay_point: float = Field(default=0.7, gt=0, le=1)
    stop_fade: float = Field(default=0.1, ge=0)
    stop_restore_delay: float = Field(default=0.15, ge=0)
    sub_gain_default: float = Field(default=DEFAULT_SUB_GAIN, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class LogSettings(BaseModel):
    """Where the log file lives and how chatty the console is."""

    log_dir: Path = Field(default_factory=lambda: Path.home() / ".cache" / "synesthesia" / "logs")
    debug: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("log_dir")
    @classmethod
    def _expand_home(cls, value: Path) -> Path:
        return value.expanduser()

    @property
    def log_path(self) -> Path:
        return self.log_dir / LOG_FILE

    @property
    def console_level(self) -> int:
        return logging.DEBUG if self.debug else logging.INFO


def _load(
    model: type[SettingsT],
    env_fields: Mapping[str, str],
    environ: Mapping[str, str] | None,
    overrides: Mapping[str, Any],
) -> SettingsT:
    env = os.environ if environ is None else environ
    payload: dict[str, Any] = {}
    for name, field_name in env_fields.items():
        value = env.get(name)
        if value is None or value.strip() == "":
            continue
        payload[field_name] = value.strip()
    payload.update(overrides)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        _LOGGER.warning("Failed to parse %s: %s", model.__name__, exc, exc_info=True)
        raise InvalidSettingsError(str(exc)) from exc


def load_settings(environ: Mapping[str, str] | None = None, **overrides: Any) -> EngineSettings:
    """Build engine settings from defaults, then environment, then explicit overrides."""
    return _load(EngineSettings, _ENGINE_ENV_FIELDS, environ, overrides)


def load_log_settings(environ: Mapping[str, str] | None = None, **overrides: Any) -> LogSettings:
    """Same layering as ``load_settings`` for SYNESTHESIA_LOG_DIR / SYNESTHESIA_DEBUG."""
    return _load(LogSettings, _LOG_ENV_FIELDS, environ, overrides)
