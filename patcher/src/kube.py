from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from kubernetes import client, config
from kubernetes.client import ApiException, CoreV1Api
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from patcher.src.errors import ClusterAccessError, NotFoundError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def load_kube_configuration() -> None:
    """Load Kubernetes client configuration.

    Attempts in-cluster config first (running inside a pod), falling back
    to the local kubeconfig for development.
    """
    try:
        config.load_incluster_config()
        LOGGER.info("Loaded in-cluster Kubernetes configuration")
    except ConfigException:
        config.load_kube_config()
        LOGGER.info("Loaded local kubeconfig")


def build_core_api() -> CoreV1Api:
    """Return a CoreV1 API client using the active kube configuration."""
    return client.CoreV1Api()


class ClusterState(Protocol):
    """The cluster operations the reconcilers depend on.

    ``get_*`` raise :class:`NotFoundError` when the object is absent; every
    other failure raises :class:`ClusterAccessError`.
    """

    def list_namespaces(self) -> list[Any]: ...

    def get_secret(self, namespace: str, name: str) -> Any: ...

    def create_secret(self, namespace: str, body: Any) -> None: ...

    def delete_secret(self, namespace: str, name: str) -> None: ...

    def get_config_map(self, namespace: str, name: str) -> Any: ...

    def create_config_map(self, namespace: str, body: Any) -> None: ...

    def delete_config_map(self, namespace: str, name: str) -> None: ...

    def list_service_accounts(self, namespace: str) -> list[Any]: ...

    def patch_service_account(self, namespace: str, name: str, body: dict[str, Any]) -> None: ...


class KubeClusterState:
    """:class:`ClusterState` backed by a ``CoreV1Api`` client."""

    def __init__(self, core_api: CoreV1Api) -> None:
        self.core_api = core_api

    @staticmethod
    def _call(action: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(f"{action}: not found") from exc
            raise ClusterAccessError(
                f"{action} failed (status={exc.status}): {exc.reason}",
                status=exc.status,
                reason=exc.reason,
            ) from exc
        except (HTTPError, OSError) as exc:
            raise ClusterAccessError(f"{action} failed: {exc}") from exc

    def list_namespaces(self) -> list[Any]:
        result = self._call("list namespaces", lambda: self.core_api.list_namespace())
        return list(result.items or [])

    def get_secret(self, namespace: str, name: str) -> Any:
        return self._call(
            f"[{namespace}] get secret {name}",
            lambda: self.core_api.read_namespaced_secret(name=name, namespace=namespace),
        )

    def create_secret(self, namespace: str, body: Any) -> None:
        self._call(
            f"[{namespace}] create secret",
            lambda: self.core_api.create_namespaced_secret(namespace=namespace, body=body),
        )

    def delete_secret(self, namespace: str, name: str) -> None:
        self._call(
            f"[{namespace}] delete secret {name}",
            lambda: self.core_api.delete_namespaced_secret(name=name, namespace=namespace),
        )

    def get_config_map(self, namespace: str, name: str) -> Any:
        return self._call(
            f"[{namespace}] get config map {name}",
            lambda: self.core_api.read_namespaced_config_map(name=name, namespace=namespace),
        )

    def create_config_map(self, namespace: str, body: Any) -> None:
        self._call(
            f"[{namespace}] create config map",
            lambda: self.core_api.create_namespaced_config_map(namespace=namespace, body=body),
        )

    def delete_config_map(self, namespace: str, name: str) -> None:
        self._call(
            f"[{namespace}] delete config map {name}",
            lambda: self.core_api.delete_namespaced_config_map(name=name, namespace=namespace),
        )

    def list_service_accounts(self, namespace: str) -> list[Any]:
        result = self._call(
            f"[{namespace}] list service accounts",
            lambda: self.core_api.list_namespaced_service_account(namespace=namespace),
        )
        return list(result.items or [])

    def patch_service_account(self, namespace: str, name: str, body: dict[str, Any]) -> None:
        self._call(
            f"[{namespace}] patch service account {name}",
            lambda: self.core_api.patch_namespaced_service_account(
                name=name, namespace=namespace, body=body
            ),
        )
