"""
Registry of APIs, their keys and their rate-limited models.

Limits live on the in-memory ModelConfig objects; update_limits merges
into them so the next evaluation sees the new ceilings. There is no
persistence and no rollback of updates.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from quota_rotator.errors import ConfigurationError, NotFoundError, ValidationError
from quota_rotator.quota.windows import WindowKeyspace

logger = logging.getLogger(__name__)


def _is_valid_limit(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


@dataclass
class ModelConfig:
    """A model offered by an API, with per-window request ceilings."""

    name: str
    """Model name, unique within its API."""

    limits: dict[str, int] = field(default_factory=dict)
    """Window name -> maximum requests per bucket."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Opaque caller data carried alongside the model."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "limits": dict(self.limits),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelConfig:
        return cls(
            name=data["name"],
            limits=dict(data.get("limits", {})),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass
class ApiConfig:
    """An upstream API: the keys that may call it and the models it serves."""

    name: str
    keys: list[str] = field(default_factory=list)
    models: list[ModelConfig] = field(default_factory=list)

    def find_model(self, model_name: str) -> ModelConfig:
        for model in self.models:
            if model.name == model_name:
                return model
        raise NotFoundError(f"Model {model_name} not found in API {self.name}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "keys": list(self.keys),
            "models": [m.to_dict() for m in self.models],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApiConfig:
        return cls(
            name=data["name"],
            keys=list(data.get("keys", [])),
            models=[ModelConfig.from_dict(m) for m in data.get("models", [])],
        )


class ConfigRegistry:
    """Holds the API definitions and validates limit changes against the keyspace."""

    def __init__(self, apis: list[ApiConfig], keyspace: WindowKeyspace) -> None:
        self._keyspace = keyspace
        self._apis: list[ApiConfig] = []
        for api in apis:
            self._add(api)

    def _add(self, api: ApiConfig) -> None:
        if any(existing.name == api.name for existing in self._apis):
            raise ValidationError(f"Duplicate API name: {api.name}")

        seen: set[str] = set()
        for model in api.models:
            if model.name in seen:
                raise ValidationError(f"Duplicate model {model.name} in API {api.name}")
            if ":" in model.name:
                raise ValidationError(f"Model name must not contain ':': {model.name}")
            seen.add(model.name)
            self._validate_limits(model.limits)

        self._apis.append(api)

    def _validate_limits(self, limits: dict[str, Any]) -> None:
        for window, limit in limits.items():
            if not self._keyspace.is_known(window):
                raise ConfigurationError(f"Invalid window: {window}")
            if not _is_valid_limit(limit):
                raise ValidationError(f"Invalid limit for {window}: {limit!r}")

    @property
    def keyspace(self) -> WindowKeyspace:
        return self._keyspace

    @property
    def apis(self) -> list[ApiConfig]:
        return list(self._apis)

    def find_api(self, api_name: str) -> ApiConfig:
        for api in self._apis:
            if api.name == api_name:
                return api
        raise NotFoundError(f'API "{api_name}" not found')

    def find_model(self, api_name: str, model_name: str) -> ModelConfig:
        return self.find_api(api_name).find_model(model_name)

    def update_limits(
        self,
        api_name: str,
        model_name: str,
        new_limits: dict[str, Any],
    ) -> dict[str, int]:
        """
        Merge new per-window limits into a model.

        Windows not named in new_limits keep their current ceilings.
        Nothing is applied if any entry is invalid.

        Returns:
            The model's full limits mapping after the merge
        """
        model = self.find_model(api_name, model_name)
        self._validate_limits(new_limits)

        model.limits = {**model.limits, **new_limits}
        logger.info(f"Updated limits for {api_name}/{model_name}: {new_limits}")
        return dict(model.limits)

    @classmethod
    def from_dicts(
        cls,
        apis: list[dict[str, Any]],
        keyspace: WindowKeyspace,
    ) -> ConfigRegistry:
        return cls([ApiConfig.from_dict(a) for a in apis], keyspace)

    @classmethod
    def from_file(cls, path: str | Path, keyspace: WindowKeyspace) -> ConfigRegistry:
        """
        Load API definitions from a JSON file.

        The file holds either a list of API objects or ``{"apis": [...]}``.
        """
        with open(path) as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("apis", [])
        logger.info(f"Loaded {len(data)} API definitions from {path}")
        return cls.from_dicts(data, keyspace)
