from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import assert_never

from patcher.src.classify import (
    ConfigMapMismatch,
    ConfigMapValid,
    SecretContentMismatch,
    SecretMissingKey,
    SecretValid,
    SecretWrongType,
    classify_config_map,
    classify_secret,
)
from patcher.src.config import PatcherConfig
from patcher.src.envfile import EnvFileError, load_env_file
from patcher.src.errors import NotFoundError, PatcherError, UnmanagedResourceError, ValidationFailure
from patcher.src.kube import ClusterState
from patcher.src.metrics import METRICS
from patcher.src.resources import (
    desired_config_map,
    desired_secret,
    image_pull_secret_names,
    image_pull_secrets_patch,
    is_managed,
)

LOGGER = logging.getLogger(__name__)

KIND_SECRET = "secret"
KIND_CONFIG_MAP = "configmap"
KIND_SERVICE_ACCOUNT = "serviceaccount"

CREATED = "created"
RECREATED = "recreated"
DELETED = "deleted"
PATCHED = "patched"
UNCHANGED = "unchanged"
SKIPPED = "skipped"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of reconciling one managed kind in one namespace.

    Failures are raised as :class:`PatcherError` subclasses instead of being
    returned, so a result always describes a converged (or deliberately
    untouched) namespace.
    """

    kind: str
    namespace: str
    action: str
    patched: tuple[str, ...] = ()


def _record(kind: str, action: str) -> None:
    METRICS.actions_total.labels(kind=kind, action=action).inc()


def recreate(
    kind: str,
    namespace: str,
    name: str,
    delete: Callable[[], None],
    create: Callable[[], None],
) -> None:
    """Repair an object by deleting it and then creating it again.

    The two phases are separate API calls. If the process stops or the create
    fails after the delete succeeded, the namespace is left without the object
    until the next cycle takes the create path.
    """
    delete()
    LOGGER.warning("[%s] Deleted %s [%s]", namespace, kind, name)
    try:
        create()
    except PatcherError:
        METRICS.incomplete_repairs_total.labels(kind=kind).inc()
        LOGGER.error(
            "[%s] %s [%s] was deleted but could not be recreated; "
            "it will be created on the next cycle",
            namespace,
            kind,
            name,
        )
        raise
    LOGGER.info("[%s] Created %s [%s]", namespace, kind, name)


def reconcile_secret(
    cluster: ClusterState,
    config: PatcherConfig,
    namespace: str,
    credential: str,
) -> ReconcileResult:
    """Ensure the registry Secret exists in *namespace* and holds *credential*."""
    name = config.secret_name
    desired = desired_secret(name, namespace, credential)

    try:
        secret = cluster.get_secret(namespace, name)
    except NotFoundError:
        cluster.create_secret(namespace, desired)
        LOGGER.info("[%s] Created secret [%s]", namespace, name)
        _record(KIND_SECRET, CREATED)
        return ReconcileResult(KIND_SECRET, namespace, CREATED)

    if config.managed_only and not is_managed(secret):
        raise UnmanagedResourceError(KIND_SECRET, namespace, name)

    state = classify_secret(secret, credential)
    match state:
        case SecretValid():
            LOGGER.debug("[%s] Secret is valid", namespace)
            return ReconcileResult(KIND_SECRET, namespace, UNCHANGED)
        case SecretWrongType() | SecretMissingKey() | SecretContentMismatch():
            if not config.force:
                raise ValidationFailure(
                    KIND_SECRET,
                    namespace,
                    name,
                    f"{state.reason}; set CONFIG_FORCE=true to overwrite",
                )
            LOGGER.warning("[%s] Secret is not valid (%s), overwriting now", namespace, state.reason)
            recreate(
                KIND_SECRET,
                namespace,
                name,
                delete=lambda: cluster.delete_secret(namespace, name),
                create=lambda: cluster.create_secret(namespace, desired),
            )
            _record(KIND_SECRET, RECREATED)
            return ReconcileResult(KIND_SECRET, namespace, RECREATED)
        case _:
            assert_never(state)


def reconcile_config_map(
    cluster: ClusterState,
    config: PatcherConfig,
    namespace: str,
) -> ReconcileResult:
    """Ensure the env-file ConfigMap in *namespace* matches its source file.

    The source is parsed on every call. A source that cannot be parsed means
    there is no desired ConfigMap: a missing one stays missing, and an
    existing one is deleted only when force is on.
    """
    name = config.configmap_name
    source_error = ""
    try:
        desired_data: dict[str, str] | None = load_env_file(config.configmap_source_path)
    except EnvFileError as exc:
        desired_data = None
        source_error = str(exc)

    try:
        config_map = cluster.get_config_map(namespace, name)
    except NotFoundError:
        if desired_data is None:
            LOGGER.debug("[%s] Skipping ConfigMap creation: %s", namespace, source_error)
            return ReconcileResult(KIND_CONFIG_MAP, namespace, SKIPPED)
        cluster.create_config_map(namespace, desired_config_map(name, namespace, desired_data))
        LOGGER.info("[%s] Created ConfigMap [%s]", namespace, name)
        _record(KIND_CONFIG_MAP, CREATED)
        return ReconcileResult(KIND_CONFIG_MAP, namespace, CREATED)

    if config.managed_only and not is_managed(config_map):
        raise UnmanagedResourceError(KIND_CONFIG_MAP, namespace, name)

    if desired_data is None:
        LOGGER.warning("[%s] ConfigMap source is no longer usable: %s", namespace, source_error)
        if not config.force:
            return ReconcileResult(KIND_CONFIG_MAP, namespace, UNCHANGED)
        LOGGER.warning("[%s] Deleting ConfigMap [%s] since its source is gone", namespace, name)
        cluster.delete_config_map(namespace, name)
        LOGGER.info("[%s] Deleted ConfigMap [%s]", namespace, name)
        _record(KIND_CONFIG_MAP, DELETED)
        return ReconcileResult(KIND_CONFIG_MAP, namespace, DELETED)

    state = classify_config_map(config_map, desired_data)
    match state:
        case ConfigMapValid():
            LOGGER.debug("[%s] ConfigMap is valid", namespace)
            return ReconcileResult(KIND_CONFIG_MAP, namespace, UNCHANGED)
        case ConfigMapMismatch():
            if not config.force:
                raise ValidationFailure(
                    KIND_CONFIG_MAP,
                    namespace,
                    name,
                    f"{state.reason}; set CONFIG_FORCE=true to overwrite",
                )
            LOGGER.warning(
                "[%s] ConfigMap is not valid (%s), overwriting now", namespace, state.reason
            )
            body = desired_config_map(name, namespace, desired_data)
            recreate(
                KIND_CONFIG_MAP,
                namespace,
                name,
                delete=lambda: cluster.delete_config_map(namespace, name),
                create=lambda: cluster.create_config_map(namespace, body),
            )
            _record(KIND_CONFIG_MAP, RECREATED)
            return ReconcileResult(KIND_CONFIG_MAP, namespace, RECREATED)
        case _:
            assert_never(state)


def reconcile_identities(
    cluster: ClusterState,
    config: PatcherConfig,
    namespace: str,
) -> ReconcileResult:
    """Append the managed Secret to the ``imagePullSecrets`` of selected service accounts.

    Stops at the first failed patch; accounts after it are left for the next
    cycle.
    """
    secret_name = config.secret_name
    patched: list[str] = []

    for service_account in cluster.list_service_accounts(namespace):
        account_name = service_account.metadata.name
        if not config.all_service_accounts and account_name not in config.service_accounts:
            LOGGER.debug("[%s] Skip service account [%s]", namespace, account_name)
            continue
        if secret_name in image_pull_secret_names(service_account):
            LOGGER.debug("[%s] ImagePullSecrets found on [%s]", namespace, account_name)
            continue

        cluster.patch_service_account(
            namespace,
            account_name,
            image_pull_secrets_patch(service_account, secret_name),
        )
        LOGGER.info(
            "[%s] Patched imagePullSecrets to service account [%s]", namespace, account_name
        )
        _record(KIND_SERVICE_ACCOUNT, PATCHED)
        patched.append(account_name)

    action = PATCHED if patched else UNCHANGED
    return ReconcileResult(KIND_SERVICE_ACCOUNT, namespace, action, patched=tuple(patched))
