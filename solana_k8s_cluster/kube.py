# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Kubernetes API access with transient/permanent error classification."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, Protocol

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from solana_k8s_cluster import logger
from solana_k8s_cluster.constants import RETRYABLE_STATUSES
from solana_k8s_cluster.errors import ConfigError, KubeApiError, TransientApiError

DEFAULT_REQUEST_TIMEOUT_SECONDS = 30


class KubeClient(Protocol):
    """The subset of the Kubernetes API the orchestrator needs.

    Implementations raise TransientApiError for failures worth retrying and
    KubeApiError for everything else.
    """

    def namespace_exists(self, namespace: str) -> bool: ...

    def create_namespace(self, namespace: str) -> None: ...

    def apply(self, manifest: dict) -> str: ...

    def deployment_ready(self, namespace: str, name: str) -> bool: ...

    def pod_waiting_reasons(self, namespace: str, selector: dict[str, str]) -> list[str]: ...

    def service_proxy_post(self, namespace: str, service: str, port: int, body: dict) -> dict: ...


class AlreadyExistsError(KubeApiError):
    """409 with reason AlreadyExists: the object is there from an earlier run."""


def _status_reason(err: ApiException) -> str:
    try:
        return json.loads(err.body or "{}").get("reason", "") or ""
    except (TypeError, ValueError):
        return ""


def _retry_after(err: ApiException) -> float | None:
    value = (err.headers or {}).get("Retry-After")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def classify_api_exception(err: ApiException, action: str) -> KubeApiError | TransientApiError:
    """Map an ApiException onto the deployment error taxonomy.

    409 AlreadyExists becomes AlreadyExistsError; 409 Conflict, 429 and
    503/504 become TransientApiError; every other status is permanent.
    """
    status = err.status
    reason = _status_reason(err)
    message = f"{action}: HTTP {status} {reason or err.reason}".rstrip()
    if status == 409 and reason == "AlreadyExists":
        return AlreadyExistsError(message, status=status)
    if status in RETRYABLE_STATUSES:
        return TransientApiError(message, status=status, retry_after=_retry_after(err))
    return KubeApiError(message, status=status)


def load_api_client(kubeconfig: str | None = None, context: str | None = None) -> client.ApiClient:
    """Load kubeconfig (or the in-cluster service account) into an ApiClient.

    Raises:
        ConfigError: If neither configuration source is usable.
    """
    try:
        config.load_kube_config(config_file=kubeconfig, context=context)
    except config.ConfigException as kube_err:
        try:
            config.load_incluster_config()
        except config.ConfigException as err:
            raise ConfigError(f"no usable Kubernetes configuration: {kube_err}") from err
    return client.ApiClient()


class KubernetesClient:
    """KubeClient backed by the official kubernetes Python client.

    One instance is shared by all worker threads; the underlying urllib3
    pool is thread safe.
    """

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.api_client = api_client or load_api_client()
        self.core = client.CoreV1Api(self.api_client)
        self.apps = client.AppsV1Api(self.api_client)
        self.request_timeout = request_timeout

    def _call(self, action: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return fn(_request_timeout=self.request_timeout, **kwargs)
        except ApiException as err:
            raise classify_api_exception(err, action) from err
        except urllib3.exceptions.HTTPError as err:
            raise TransientApiError(f"{action}: {err}") from err

    def _methods(self, kind: str) -> tuple[Callable[..., Any], Callable[..., Any]]:
        methods = {
            "ConfigMap": (self.core.create_namespaced_config_map, self.core.patch_namespaced_config_map),
            "Secret": (self.core.create_namespaced_secret, self.core.patch_namespaced_secret),
            "Service": (self.core.create_namespaced_service, self.core.patch_namespaced_service),
            "Deployment": (self.apps.create_namespaced_deployment, self.apps.patch_namespaced_deployment),
        }
        try:
            return methods[kind]
        except KeyError:
            raise KubeApiError(f"unsupported object kind '{kind}'") from None

    def namespace_exists(self, namespace: str) -> bool:
        try:
            self._call(f"read namespace {namespace}", self.core.read_namespace, name=namespace)
        except KubeApiError as err:
            if err.status == 404:
                return False
            raise
        return True

    def create_namespace(self, namespace: str) -> None:
        body = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": namespace}}
        try:
            self._call(f"create namespace {namespace}", self.core.create_namespace, body=body)
        except AlreadyExistsError:
            logger.debug("namespace %s already exists", namespace)

    def apply(self, manifest: dict) -> str:
        """Create *manifest*, or patch it in place if it already exists.

        Returns:
            ``"created"`` or ``"configured"``.
        """
        kind = manifest["kind"]
        meta = manifest["metadata"]
        create, patch = self._methods(kind)
        action = f"{kind} {meta['namespace']}/{meta['name']}"
        try:
            self._call(f"create {action}", create, namespace=meta["namespace"], body=manifest)
            return "created"
        except AlreadyExistsError:
            self._call(f"patch {action}", patch, name=meta["name"], namespace=meta["namespace"], body=manifest)
            return "configured"

    def deployment_ready(self, namespace: str, name: str) -> bool:
        try:
            deployment = self._call(
                f"read deployment {namespace}/{name}",
                self.apps.read_namespaced_deployment_status,
                name=name, namespace=namespace,
            )
        except KubeApiError as err:
            if err.status == 404:
                return False
            raise
        desired = deployment.spec.replicas or 1
        status = deployment.status
        if status is None:
            return False
        if (status.observed_generation or 0) < (deployment.metadata.generation or 0):
            return False
        return (status.ready_replicas or 0) >= desired

    def pod_waiting_reasons(self, namespace: str, selector: dict[str, str]) -> list[str]:
        label_selector = ",".join(f"{key}={value}" for key, value in sorted(selector.items()))
        pods = self._call(
            f"list pods {namespace} ({label_selector})",
            self.core.list_namespaced_pod,
            namespace=namespace, label_selector=label_selector,
        )
        reasons = []
        for pod in pods.items:
            for container_status in (pod.status.container_statuses or []) if pod.status else []:
                waiting = container_status.state.waiting if container_status.state else None
                if waiting and waiting.reason:
                    reasons.append(waiting.reason)
        return reasons

    def service_proxy_post(self, namespace: str, service: str, port: int, body: dict) -> dict:
        """POST *body* as JSON to ``service:port`` through the API server proxy.

        Returns:
            The decoded JSON reply.
        """
        response = self._call(
            f"proxy POST to service {namespace}/{service}:{port}",
            self.api_client.call_api,
            resource_path="/api/v1/namespaces/{namespace}/services/{name}/proxy/",
            method="POST",
            path_params={"namespace": namespace, "name": f"{service}:{port}"},
            header_params={"Accept": "application/json", "Content-Type": "application/json"},
            body=body,
            auth_settings=["BearerToken"],
            _return_http_data_only=True,
            _preload_content=False,
        )
        return json.loads(response.data)
