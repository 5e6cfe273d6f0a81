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


"""Post-deployment convergence check against the bootstrap RPC endpoint."""

from __future__ import annotations

from dataclasses import dataclass

import requests
from rich.panel import Panel
from tenacity import RetryError

from solana_k8s_cluster import console, logger
from solana_k8s_cluster.backoff import BackoffPolicy
from solana_k8s_cluster.config import ClusterSpec
from solana_k8s_cluster.constants import BOOTSTRAP_NAME, DEFAULT_RPC_REQUEST_TIMEOUT_SECONDS, RPC_PORT
from solana_k8s_cluster.errors import KubeApiError, TransientApiError, VerificationError
from solana_k8s_cluster.kube import KubeClient
from solana_k8s_cluster.manifests import bootstrap_rpc_url


@dataclass(frozen=True)
class VerificationResult:
    """What the bootstrap node reported about the cluster.

    Attributes:
        endpoint: RPC endpoint that was queried.
        expected_nodes: Number of nodes the cluster should have (N+1).
        observed_nodes: Gossip peers reported by ``getClusterNodes``.
        observed_validators: Vote accounts reported by ``getVoteAccounts``,
            current and delinquent.
        peers: Identity pubkeys of the gossip peers.
    """

    endpoint: str
    expected_nodes: int
    observed_nodes: int
    observed_validators: int
    peers: tuple[str, ...] = ()

    @property
    def converged(self) -> bool:
        return self.observed_nodes == self.expected_nodes


@dataclass(frozen=True)
class ServiceProxy:
    """Bootstrap RPC Service reached through the API server's service proxy.

    Works from outside the cluster, where the Service's DNS name does not
    resolve.
    """

    namespace: str
    service: str = BOOTSTRAP_NAME
    port: int = RPC_PORT

    def __str__(self) -> str:
        return f"service {self.namespace}/{self.service}:{self.port} (API server proxy)"


def verify_endpoint(spec: ClusterSpec, via_api_server: bool = False) -> str | ServiceProxy:
    """Where to verify: the ``--rpc-url`` override, else the bootstrap Service.

    Args:
        spec: Resolved cluster spec.
        via_api_server: Reach the Service through the API server proxy
            instead of its cluster-local DNS name.
    """
    if spec.deploy.rpc_url:
        return spec.deploy.rpc_url
    if via_api_server:
        return ServiceProxy(spec.namespace)
    return bootstrap_rpc_url(spec.namespace)


class ConvergenceVerifier:
    """Poll the bootstrap node until every expected node shows up in gossip.

    Requests go straight to an RPC URL with ``requests``, or through the
    Kubernetes API server when the target is a :class:`ServiceProxy`.
    """

    def __init__(
        self,
        policy: BackoffPolicy,
        session: requests.Session | None = None,
        request_timeout: float = DEFAULT_RPC_REQUEST_TIMEOUT_SECONDS,
        client: KubeClient | None = None,
    ) -> None:
        self.policy = policy
        self.session = session or requests.Session()
        self.request_timeout = request_timeout
        self.client = client

    def _post(self, target: str | ServiceProxy, payload: dict) -> dict:
        if isinstance(target, ServiceProxy):
            if self.client is None:
                raise VerificationError(f"no Kubernetes client to reach {target}")
            return self.client.service_proxy_post(target.namespace, target.service, target.port, payload)
        response = self.session.post(target, json=payload, timeout=self.request_timeout)
        response.raise_for_status()
        return response.json()

    def _rpc(self, target: str | ServiceProxy, method: str) -> object:
        body = self._post(target, {"jsonrpc": "2.0", "id": 1, "method": method})
        if body.get("error"):
            raise VerificationError(f"{method}: {body['error'].get('message', body['error'])}")
        return body["result"]

    def observe(self, target: str | ServiceProxy, expected_nodes: int) -> VerificationResult:
        """Query gossip and vote accounts once.

        Raises:
            requests.RequestException: If the endpoint cannot be reached.
            TransientApiError: If the API server proxy is unavailable.
            KubeApiError: If the API server rejects the proxy request.
            VerificationError: If the node answers with a JSON-RPC error.
        """
        nodes = self._rpc(target, "getClusterNodes")
        votes = self._rpc(target, "getVoteAccounts")
        return VerificationResult(
            endpoint=str(target),
            expected_nodes=expected_nodes,
            observed_nodes=len(nodes),
            observed_validators=len(votes.get("current", [])) + len(votes.get("delinquent", [])),
            peers=tuple(sorted(node.get("pubkey", "") for node in nodes)),
        )

    def verify(self, spec: ClusterSpec, endpoint: str | ServiceProxy | None = None) -> VerificationResult:
        """Wait until the bootstrap reports exactly ``spec.expected_nodes`` peers.

        Args:
            spec: Resolved cluster spec.
            endpoint: RPC URL or proxy target; defaults to
                :func:`verify_endpoint`, through the API server when this
                verifier has a Kubernetes client.

        Returns:
            The last observation, whose peer count matches.

        Raises:
            VerificationError: If the endpoint stays unreachable or the peer
                count still differs when the poll window closes.
        """
        endpoint = endpoint or verify_endpoint(spec, via_api_server=self.client is not None)
        expected = spec.expected_nodes
        console.print(Panel.fit(f"Verifying convergence via {endpoint}", style="bold blue"))
        last: dict[str, object] = {"result": None, "error": None}

        def _attempt() -> VerificationResult | None:
            try:
                result = self.observe(endpoint, expected)
            except (requests.RequestException, ValueError, KeyError, AttributeError,
                    TransientApiError, KubeApiError, VerificationError) as err:
                logger.debug("convergence check against %s failed: %s", endpoint, err)
                last["error"] = err
                return None
            last["result"] = result
            logger.debug("gossip reports %d of %d nodes", result.observed_nodes, expected)
            return result if result.converged else None

        try:
            result = self.policy.polling()(_attempt)
        except RetryError as err:
            observed = last["result"]
            if observed is None:
                raise VerificationError(
                    f"RPC endpoint {endpoint} unreachable: {last['error']}", expected=expected
                ) from err
            raise VerificationError(
                f"expected {expected} gossip nodes, observed {observed.observed_nodes}",
                expected=expected,
                observed=observed.observed_nodes,
            ) from err
        console.print(
            f"[green]\u2705 {result.observed_nodes}/{expected} nodes in gossip, "
            f"{result.observed_validators} vote accounts[/green]"
        )
        return result
