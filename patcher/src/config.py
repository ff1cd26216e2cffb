from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from patcher.src.namespaces import split_name_list

DEFAULT_SERVICE_ACCOUNT = "default"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigError(RuntimeError):
    """Raised when the patcher configuration is invalid."""


class ConfigurationConflict(ConfigError):
    """Raised when mutually exclusive settings are both provided."""


@dataclass(frozen=True)
class PatcherConfig:
    """Immutable reconciliation policy, passed explicitly to every reconciler.

    Attributes:
        force:                  Allow delete + recreate of invalid managed objects.
        managed_only:           Refuse to touch objects lacking the managed-by marker.
        all_service_accounts:   Patch every service account instead of the allow-list.
        service_accounts:       Allow-list used when ``all_service_accounts`` is off.
        excluded_namespaces:    Names never reconciled, compared verbatim.
        secret_name:            Name of the managed registry Secret.
        dockerconfigjson:       Literal credential (exclusive with the path).
        dockerconfigjson_path:  File holding the credential.
        configmap_name:         Name of the managed ConfigMap.
        configmap_source_path:  Env-style file the ConfigMap is built from.
        loop_duration_seconds:  Pause between cycles.
        run_once:               Exit after a single cycle.
    """

    force: bool = True
    debug: bool = False
    managed_only: bool = False
    run_once: bool = False
    all_service_accounts: bool = True
    service_accounts: tuple[str, ...] = (DEFAULT_SERVICE_ACCOUNT,)
    excluded_namespaces: tuple[str, ...] = ()
    secret_name: str = "registry"
    dockerconfigjson: str = ""
    dockerconfigjson_path: str = ""
    configmap_name: str = "aws-configs"
    configmap_source_path: str = "/config/aws-configs"
    loop_duration_seconds: float = 10.0
    log_level: str = "INFO"
    health_port: int = 8080

    def __post_init__(self) -> None:
        if self.dockerconfigjson and self.dockerconfigjson_path:
            raise ConfigurationConflict(
                "Cannot specify both CONFIG_DOCKERCONFIGJSON and CONFIG_DOCKERCONFIGJSONPATH"
            )
        if not self.secret_name.strip():
            raise ConfigError("CONFIG_SECRETNAME must be a non-empty string")
        if not self.configmap_name.strip():
            raise ConfigError("CONFIG_AWS_CONFIGMAP_NAME must be a non-empty string")
        if self.loop_duration_seconds < 0:
            raise ConfigError("CONFIG_LOOP_DURATION must not be negative")


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def parse_duration(raw: str) -> float:
    """Parse a duration such as ``10s``, ``1m30s``, ``500ms`` or ``15`` into seconds.

    A bare number is taken as seconds.
    """
    text = raw.strip()
    if not text:
        raise ConfigError("duration must not be empty")
    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text) or position == 0:
        raise ConfigError(f"invalid duration: {raw!r}")
    return total


def env_int(
    values: Mapping[str, str],
    name: str,
    default: int,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    raw = values.get(name)
    if raw is None:
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer") from exc

    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got: {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got: {value}")
    return value


def load_config(env: Mapping[str, str] | None = None) -> PatcherConfig:
    """Build a :class:`PatcherConfig` from ``CONFIG_*`` environment variables.

    Unset variables keep the dataclass defaults. Setting both credential
    sources raises :class:`ConfigurationConflict`.
    """
    values = env if env is not None else os.environ
    defaults = PatcherConfig()

    raw_duration = values.get("CONFIG_LOOP_DURATION")
    try:
        loop_duration = (
            defaults.loop_duration_seconds if raw_duration is None else parse_duration(raw_duration)
        )
    except ConfigError as exc:
        raise ConfigError(f"CONFIG_LOOP_DURATION: {exc}") from exc

    debug = parse_bool(values.get("CONFIG_DEBUG"), defaults.debug)
    log_level = "DEBUG" if debug else values.get("LOG_LEVEL", defaults.log_level).upper()

    return PatcherConfig(
        force=parse_bool(values.get("CONFIG_FORCE"), defaults.force),
        debug=debug,
        managed_only=parse_bool(values.get("CONFIG_MANAGEDONLY"), defaults.managed_only),
        run_once=parse_bool(values.get("CONFIG_RUNONCE"), defaults.run_once),
        all_service_accounts=parse_bool(
            values.get("CONFIG_ALLSERVICEACCOUNT"), defaults.all_service_accounts
        ),
        service_accounts=split_name_list(
            values.get("CONFIG_SERVICEACCOUNTS", DEFAULT_SERVICE_ACCOUNT)
        ),
        excluded_namespaces=split_name_list(values.get("CONFIG_EXCLUDED_NAMESPACES", "")),
        secret_name=values.get("CONFIG_SECRETNAME", defaults.secret_name),
        dockerconfigjson=values.get("CONFIG_DOCKERCONFIGJSON", ""),
        dockerconfigjson_path=values.get("CONFIG_DOCKERCONFIGJSONPATH", ""),
        configmap_name=values.get("CONFIG_AWS_CONFIGMAP_NAME", defaults.configmap_name),
        configmap_source_path=values.get(
            "CONFIG_AWS_CONFIG_FILE", defaults.configmap_source_path
        ),
        loop_duration_seconds=loop_duration,
        log_level=log_level,
        health_port=env_int(values, "HEALTH_PORT", defaults.health_port, minimum=1, maximum=65535),
    )


def read_desired_credential(config: PatcherConfig) -> str:
    """Return the registry credential from the literal value or the configured file.

    The file is read on every call so a rotated credential is picked up on
    the next cycle.
    """
    if config.dockerconfigjson:
        return config.dockerconfigjson
    if not config.dockerconfigjson_path:
        raise ConfigError(
            "No registry credential configured; set CONFIG_DOCKERCONFIGJSON "
            "or CONFIG_DOCKERCONFIGJSONPATH"
        )
    try:
        return Path(config.dockerconfigjson_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(
            f"Failed to read registry credential from {config.dockerconfigjson_path}: {exc}"
        ) from exc
