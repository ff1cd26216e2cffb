from __future__ import annotations

import base64
from collections.abc import Mapping
from typing import Any

from kubernetes.client import V1ConfigMap, V1ObjectMeta, V1Secret

MANAGED_BY_ANNOTATION = "k8s.titansoft.com/imagepullsecret-patcher"
MANAGED_BY_VALUE = "imagepullsecret-patcher"

DOCKER_CONFIG_JSON_TYPE = "kubernetes.io/dockerconfigjson"
DOCKER_CONFIG_JSON_KEY = ".dockerconfigjson"


def encode_payload(payload: str) -> str:
    """Base64-encode a credential the way the API stores Secret ``data`` values."""
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def _managed_metadata(name: str, namespace: str) -> V1ObjectMeta:
    return V1ObjectMeta(
        name=name,
        namespace=namespace,
        annotations={MANAGED_BY_ANNOTATION: MANAGED_BY_VALUE},
    )


def desired_secret(name: str, namespace: str, credential: str) -> V1Secret:
    """Build the managed registry-credential Secret for *namespace*."""
    return V1Secret(
        metadata=_managed_metadata(name, namespace),
        type=DOCKER_CONFIG_JSON_TYPE,
        data={DOCKER_CONFIG_JSON_KEY: encode_payload(credential)},
    )


def desired_config_map(name: str, namespace: str, data: Mapping[str, str]) -> V1ConfigMap:
    """Build the managed ConfigMap holding the parsed env-file entries."""
    return V1ConfigMap(metadata=_managed_metadata(name, namespace), data=dict(data))


def is_managed(obj: Any) -> bool:
    """Return True if *obj* carries the managed-by annotation with our value."""
    metadata = getattr(obj, "metadata", None)
    annotations = getattr(metadata, "annotations", None) or {}
    return annotations.get(MANAGED_BY_ANNOTATION) == MANAGED_BY_VALUE


def image_pull_secret_names(service_account: Any) -> list[str]:
    """Return the ``imagePullSecrets`` names of a ServiceAccount in order."""
    references = getattr(service_account, "image_pull_secrets", None) or []
    return [ref.name for ref in references if getattr(ref, "name", None)]


def image_pull_secrets_patch(service_account: Any, secret_name: str) -> dict[str, Any]:
    """Build a patch that appends *secret_name* to the account's pull secrets.

    The full list is sent, so every existing reference is echoed back as-is,
    including ones without a name, and the managed secret lands last.
    """
    references = getattr(service_account, "image_pull_secrets", None) or []
    entries: list[dict[str, Any]] = [
        {} if getattr(ref, "name", None) is None else {"name": ref.name} for ref in references
    ]
    entries.append({"name": secret_name})
    return {"imagePullSecrets": entries}
