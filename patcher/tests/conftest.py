from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from kubernetes.client import (
    ApiException,
    V1LocalObjectReference,
    V1Namespace,
    V1ObjectMeta,
    V1ServiceAccount,
)

from patcher.src.kube import KubeClusterState


class FakeCoreApi:
    """In-memory stand-in for the ``CoreV1Api`` calls the patcher makes.

    Objects are stored as the kubernetes model instances they were created
    with. ``fail`` maps a method name, or ``"<method>:<object name>"``, to the
    HTTP status that call should raise, or to an exception instance to raise
    as-is (transport failures that never reach the API server).
    """

    def __init__(self) -> None:
        self.namespaces: list[V1Namespace] = []
        self.secrets: dict[tuple[str, str], Any] = {}
        self.config_maps: dict[tuple[str, str], Any] = {}
        self.service_accounts: dict[str, list[V1ServiceAccount]] = {}
        self.fail: dict[str, int | Exception] = {}
        self.calls: list[tuple[str, str, str]] = []

    def _check(self, method: str, name: str = "") -> None:
        status = self.fail.get(f"{method}:{name}", self.fail.get(method))
        if isinstance(status, Exception):
            raise status
        if status is not None:
            raise ApiException(status=status, reason="boom")

    def _missing(self) -> ApiException:
        return ApiException(status=404, reason="Not Found")

    # -- seeding helpers ---------------------------------------------------

    def add_namespace(self, name: str, annotations: dict[str, str] | None = None) -> None:
        self.namespaces.append(
            V1Namespace(metadata=V1ObjectMeta(name=name, annotations=annotations))
        )

    def add_service_account(
        self, namespace: str, name: str, pull_secrets: tuple[str, ...] = ()
    ) -> None:
        refs = [V1LocalObjectReference(name=secret) for secret in pull_secrets] or None
        self.service_accounts.setdefault(namespace, []).append(
            V1ServiceAccount(
                metadata=V1ObjectMeta(name=name, namespace=namespace),
                image_pull_secrets=refs,
            )
        )

    def service_account(self, namespace: str, name: str) -> V1ServiceAccount:
        for account in self.service_accounts.get(namespace, []):
            if account.metadata.name == name:
                return account
        raise KeyError(name)

    def pull_secret_names(self, namespace: str, name: str) -> list[str]:
        refs = self.service_account(namespace, name).image_pull_secrets or []
        return [ref.name for ref in refs]

    def mutating_calls(self) -> list[tuple[str, str, str]]:
        return [call for call in self.calls if not call[0].startswith(("read", "list"))]

    # -- CoreV1Api surface -------------------------------------------------

    def list_namespace(self) -> SimpleNamespace:
        self.calls.append(("list_namespace", "", ""))
        self._check("list_namespace")
        return SimpleNamespace(items=list(self.namespaces))

    def _read(self, store: dict[tuple[str, str], Any], method: str, name: str, namespace: str) -> Any:
        self.calls.append((method, namespace, name))
        self._check(method, name)
        if (namespace, name) not in store:
            raise self._missing()
        return store[(namespace, name)]

    def _create(self, store: dict[tuple[str, str], Any], method: str, namespace: str, body: Any) -> Any:
        name = body.metadata.name
        self.calls.append((method, namespace, name))
        self._check(method, name)
        if (namespace, name) in store:
            raise ApiException(status=409, reason="AlreadyExists")
        store[(namespace, name)] = body
        return body

    def _delete(self, store: dict[tuple[str, str], Any], method: str, name: str, namespace: str) -> None:
        self.calls.append((method, namespace, name))
        self._check(method, name)
        if store.pop((namespace, name), None) is None:
            raise self._missing()

    def read_namespaced_secret(self, name: str, namespace: str) -> Any:
        return self._read(self.secrets, "read_namespaced_secret", name, namespace)

    def create_namespaced_secret(self, namespace: str, body: Any) -> Any:
        return self._create(self.secrets, "create_namespaced_secret", namespace, body)

    def delete_namespaced_secret(self, name: str, namespace: str) -> None:
        self._delete(self.secrets, "delete_namespaced_secret", name, namespace)

    def read_namespaced_config_map(self, name: str, namespace: str) -> Any:
        return self._read(self.config_maps, "read_namespaced_config_map", name, namespace)

    def create_namespaced_config_map(self, namespace: str, body: Any) -> Any:
        return self._create(self.config_maps, "create_namespaced_config_map", namespace, body)

    def delete_namespaced_config_map(self, name: str, namespace: str) -> None:
        self._delete(self.config_maps, "delete_namespaced_config_map", name, namespace)

    def list_namespaced_service_account(self, namespace: str) -> SimpleNamespace:
        self.calls.append(("list_namespaced_service_account", namespace, ""))
        self._check("list_namespaced_service_account")
        return SimpleNamespace(items=list(self.service_accounts.get(namespace, [])))

    def patch_namespaced_service_account(
        self, name: str, namespace: str, body: dict[str, Any]
    ) -> None:
        self.calls.append(("patch_namespaced_service_account", namespace, name))
        self._check("patch_namespaced_service_account", name)
        account = self.service_account(namespace, name)
        account.image_pull_secrets = [
            V1LocalObjectReference(name=ref.get("name")) for ref in body["imagePullSecrets"]
        ]


@pytest.fixture
def core_api() -> FakeCoreApi:
    return FakeCoreApi()


@pytest.fixture
def cluster(core_api: FakeCoreApi) -> KubeClusterState:
    return KubeClusterState(core_api)  # type: ignore[arg-type]
