from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from patcher.src.resources import DOCKER_CONFIG_JSON_KEY, DOCKER_CONFIG_JSON_TYPE


@dataclass(frozen=True)
class SecretValid:
    reason: str = "valid"


@dataclass(frozen=True)
class SecretWrongType:
    actual_type: str | None

    @property
    def reason(self) -> str:
        return f"type is {self.actual_type!r}, expected {DOCKER_CONFIG_JSON_TYPE!r}"


@dataclass(frozen=True)
class SecretMissingKey:
    key: str

    @property
    def reason(self) -> str:
        return f"data key {self.key!r} is missing"


@dataclass(frozen=True)
class SecretContentMismatch:
    key: str

    @property
    def reason(self) -> str:
        return f"data key {self.key!r} does not match the desired credential"


SecretState = SecretValid | SecretWrongType | SecretMissingKey | SecretContentMismatch


@dataclass(frozen=True)
class ConfigMapValid:
    reason: str = "valid"


@dataclass(frozen=True)
class ConfigMapMismatch:
    missing: tuple[str, ...] = ()
    unexpected: tuple[str, ...] = ()
    changed: tuple[str, ...] = ()

    @property
    def reason(self) -> str:
        parts = []
        if self.missing:
            parts.append(f"missing keys {', '.join(self.missing)}")
        if self.unexpected:
            parts.append(f"unexpected keys {', '.join(self.unexpected)}")
        if self.changed:
            parts.append(f"changed keys {', '.join(self.changed)}")
        return "; ".join(parts) or "data differs"


ConfigMapState = ConfigMapValid | ConfigMapMismatch


def _decode(value: str) -> bytes | None:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None


def classify_secret(secret: Any, credential: str) -> SecretState:
    """Classify a fetched Secret against the desired credential.

    Checks run in precedence order: type, then key presence, then payload.
    Secret ``data`` values are base64 strings as returned by the API.
    """
    secret_type = getattr(secret, "type", None)
    if secret_type != DOCKER_CONFIG_JSON_TYPE:
        return SecretWrongType(actual_type=secret_type)

    data = getattr(secret, "data", None) or {}
    if DOCKER_CONFIG_JSON_KEY not in data:
        return SecretMissingKey(key=DOCKER_CONFIG_JSON_KEY)

    if _decode(data[DOCKER_CONFIG_JSON_KEY] or "") != credential.encode("utf-8"):
        return SecretContentMismatch(key=DOCKER_CONFIG_JSON_KEY)
    return SecretValid()


def classify_config_map(config_map: Any, desired: Mapping[str, str]) -> ConfigMapState:
    """Compare a ConfigMap's ``data`` with *desired*, ignoring key order."""
    current = getattr(config_map, "data", None) or {}
    if current == dict(desired):
        return ConfigMapValid()
    return ConfigMapMismatch(
        missing=tuple(sorted(set(desired) - set(current))),
        unexpected=tuple(sorted(set(current) - set(desired))),
        changed=tuple(sorted(k for k in set(current) & set(desired) if current[k] != desired[k])),
    )
