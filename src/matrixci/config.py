# config.py
from __future__ import annotations

import os
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError

ENV_PREFIX = "MATRIXCI_"


class Settings(BaseModel):
    """Orchestrator settings.

    Read from MATRIXCI_* environment variables; CLI flags override them.
    Settings are fixed for the lifetime of a run.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_agents: int = Field(default=2, ge=1)
    step_timeout: float = Field(default=3600.0, gt=0)
    schedule_binding: Optional[Literal["first", "each"]] = None  # None: workflow decides
    output_tail: int = Field(default=4000, ge=0)
    poll_interval: float = Field(default=0.05, gt=0)
    workdir: str = "."

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> Settings:
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if key in environ:
                data[name] = environ[key]
        data.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError("invalid settings", errors=e.errors()) from e
