"""Resolver configuration: validated once, before any polling starts."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError, field_validator

from vmresolver.errors import ConfigError

logger = logging.getLogger(__name__)


class InventoryTags(BaseModel):
    """Selection criteria: the VM tag to match and the NIC tag pattern."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    vm_tag_name: StrictStr = Field(min_length=1)
    vm_tag_value: StrictStr
    nic_tag: StrictStr

    @field_validator("nic_tag")
    @classmethod
    def _nic_tag_compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"nic_tag is not a valid regular expression: {exc}") from exc
        return value


class ResolverConfig(BaseModel):
    """Everything a :class:`~vmresolver.resolver.Resolver` needs at construction.

    ``poll_interval`` is in seconds. All fields are required.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: StrictStr = Field(min_length=1)
    tags: InventoryTags
    backend_port: StrictInt = Field(ge=1, le=65535)
    poll_interval: float = Field(gt=0)

    @field_validator("poll_interval", mode="before")
    @classmethod
    def _interval_is_number(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("poll_interval must be a number of seconds")
        return value

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResolverConfig:
        """Validate *data*, raising :class:`ConfigError` on any problem.

        Also accepts ``pollInterval`` in milliseconds in place of
        ``poll_interval``.
        """
        if not isinstance(data, Mapping):
            raise ConfigError(
                f"Resolver configuration must be a mapping, got {type(data).__name__}"
            )
        data = dict(data)
        if "pollInterval" in data and "poll_interval" not in data:
            millis = data.pop("pollInterval")
            if isinstance(millis, (int, float)) and not isinstance(millis, bool):
                data["poll_interval"] = millis / 1000
            else:
                data["poll_interval"] = millis
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid resolver configuration: {exc}") from exc

    @classmethod
    def load(cls, path: str | Path) -> ResolverConfig:
        """Read and validate a JSON configuration file."""
        path = Path(path)
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError as exc:
            raise ConfigError(f"Config not found at {path}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Could not read config {path}: {exc}") from exc
        logger.debug("Loaded resolver config from %s", path)
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()
