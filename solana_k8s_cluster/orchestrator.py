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


"""Bootstrap-first deployment of the cluster's nodes onto Kubernetes."""

from __future__ import annotations

import queue
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass, field

from rich.panel import Panel
from tenacity import RetryError

from solana_k8s_cluster import console, logger
from solana_k8s_cluster.backoff import BackoffPolicy
from solana_k8s_cluster.config import ClusterSpec
from solana_k8s_cluster.constants import TERMINAL_WAITING_REASONS
from solana_k8s_cluster.errors import (
    BootstrapTimeoutError,
    ConfigError,
    KubeApiError,
    NodeDeploymentError,
    TransientApiError,
)
from solana_k8s_cluster.genesis import GenesisBundle
from solana_k8s_cluster.kube import KubeClient
from solana_k8s_cluster.manifests import NodeSpec, build_node_specs, genesis_config_map, render_node
from solana_k8s_cluster.state import ClusterStatus, DeploymentState, NodePhase


@dataclass
class RunContext:
    """Everything one run shares between threads, passed explicitly.

    Attributes:
        namespace: Target namespace.
        client: Kubernetes client shared by all workers.
        cancel_event: Set to stop submitting new nodes.
        bootstrap_ready: Gate opened once the bootstrap is Ready; the
            validator pool never starts before it is set.
    """

    namespace: str
    client: KubeClient
    cancel_event: threading.Event = field(default_factory=threading.Event)
    bootstrap_ready: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


def preflight(context: RunContext, spec: ClusterSpec) -> bool:
    """Check that the target namespace exists. Read-only.

    Args:
        context: Run context.
        spec: Resolved cluster spec.

    Returns:
        True if the namespace exists, False if it is missing but will be
        created because ``create_namespace`` is set.

    Raises:
        ConfigError: If the namespace is missing and may not be created.
    """
    policy = spec.deploy.api_retry
    exists = policy.retrying(TransientApiError, what=f"namespace lookup '{context.namespace}'")(
        context.client.namespace_exists, context.namespace
    )
    if not exists and not spec.deploy.create_namespace:
        raise ConfigError(f"namespace '{context.namespace}' does not exist (pass --create-namespace to create it)")
    return exists


class ClusterOrchestrator:
    """Submit the bootstrap, wait for it, then fan out the validators.

    Validators are drained from a shared queue by a fixed pool of worker
    threads, each doing create-then-poll for one node at a time. A failing
    validator is recorded and never aborts its siblings; a bootstrap that
    does not become Ready fails the whole run.
    """

    def __init__(
        self,
        spec: ClusterSpec,
        bundle: GenesisBundle,
        context: RunContext,
        nodes: list[NodeSpec] | None = None,
    ) -> None:
        self.spec = spec
        self.bundle = bundle
        self.context = context
        self.nodes = nodes if nodes is not None else build_node_specs(spec, bundle)
        self.state = DeploymentState(self.nodes)
        self.options = spec.deploy
        self._output_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Kubernetes calls
    # ------------------------------------------------------------------

    def _apply(self, node: NodeSpec, manifest: dict) -> None:
        kind, name = manifest["kind"], manifest["metadata"]["name"]
        policy = self.options.api_retry
        try:
            result = policy.retrying(TransientApiError, what=f"create {kind} {name}")(
                self.context.client.apply, manifest
            )
        except TransientApiError as err:
            raise NodeDeploymentError(
                node.name, f"{kind} {name} not created after {policy.max_attempts} attempts: {err}"
            ) from err
        except KubeApiError as err:
            raise NodeDeploymentError(node.name, f"{kind} {name} rejected: {err}") from err
        console.print(f"[green]  \u2713 {kind}/{name} {result}[/green]")

    def _submit(self, node: NodeSpec) -> None:
        """Create every object of *node*. Once started, always runs to the end."""
        self.state.transition(node.name, NodePhase.SUBMITTED)
        manifests = render_node(self.spec, self.bundle, node)
        if node.is_bootstrap:
            manifests.insert(0, genesis_config_map(self.spec, self.bundle))
        for manifest in manifests:
            self._apply(node, manifest)

    def _check_ready(self, node: NodeSpec) -> bool:
        client = self.context.client
        try:
            if client.deployment_ready(self.context.namespace, node.name):
                return True
            reasons = client.pod_waiting_reasons(self.context.namespace, node.selector)
        except TransientApiError as err:
            logger.debug("readiness check for %s failed: %s", node.name, err)
            return False
        except KubeApiError as err:
            raise NodeDeploymentError(node.name, f"readiness check failed: {err}") from err
        terminal = sorted(set(reasons) & TERMINAL_WAITING_REASONS)
        if terminal:
            raise NodeDeploymentError(node.name, f"pod cannot start: {', '.join(terminal)}")
        return False

    def _wait_ready(
        self,
        node: NodeSpec,
        policy: BackoffPolicy,
        error_cls: type[NodeDeploymentError] = NodeDeploymentError,
    ) -> bool:
        """Poll until *node* is Ready.

        Returns:
            True once Ready, False if the run was cancelled while waiting.

        Raises:
            NodeDeploymentError: If the pod cannot start or the readiness
                check fails permanently.
            error_cls: If the policy is exhausted before the node is Ready.
        """
        try:
            return policy.polling(cancelled=lambda: self.context.cancelled)(self._check_ready, node)
        except RetryError as err:
            if self.context.cancelled:
                return False
            attempts = err.last_attempt.attempt_number
            raise error_cls(node.name, f"not ready after {attempts} checks") from err

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _ensure_namespace(self) -> None:
        if preflight(self.context, self.spec):
            return
        self.options.api_retry.retrying(TransientApiError, what="create namespace")(
            self.context.client.create_namespace, self.context.namespace
        )
        console.print(f"[green]\u2705 Namespace '{self.context.namespace}' created[/green]")

    def _deploy_bootstrap(self, node: NodeSpec) -> bool:
        console.print(Panel.fit(f"Deploying {node.name}", style="bold blue"))
        self._submit(node)
        console.print(f"[yellow]\u2139\ufe0f  Waiting for {node.name} to become ready...[/yellow]")
        if not self._wait_ready(node, self.options.bootstrap_ready, BootstrapTimeoutError):
            return False
        self.state.transition(node.name, NodePhase.READY)
        self.context.bootstrap_ready.set()
        console.print(f"[green]\u2705 {node.name} is ready ({node.identity})[/green]")
        return True

    def _fail(self, node: NodeSpec, reason: str) -> None:
        """Record *node* as Failed; a node that never left Pending stays Pending."""
        phase = self.state.phase(node.name)
        if phase is NodePhase.SUBMITTED:
            self.state.transition(node.name, NodePhase.FAILED, reason)
        else:
            logger.warning("%s failed while %s: %s", node.name, phase.value, reason)

    def _deploy_validator(self, node: NodeSpec) -> None:
        try:
            self._submit(node)
            ready = self._wait_ready(node, self.options.validator_ready)
        except NodeDeploymentError as err:
            self._fail(node, err.reason)
            logger.error("%s", err)
            console.print(f"[red]\u274c {node.name}: {err.reason}[/red]")
            return
        except Exception as err:
            reason = f"unexpected error: {type(err).__name__}: {err}"
            logger.exception("deploying %s failed", node.name)
            self._fail(node, reason)
            console.print(f"[red]\u274c {node.name}: {reason}[/red]")
            return
        if ready:
            self.state.transition(node.name, NodePhase.READY)
            console.print(f"[green]  \u2713 {node.name} ready ({node.identity})[/green]")

    def _drain(self, pending: queue.Queue[NodeSpec]) -> None:
        if not self.context.bootstrap_ready.is_set():
            raise RuntimeError("validator pool started before the bootstrap is ready")
        while not self.context.cancelled:
            try:
                node = pending.get_nowait()
            except queue.Empty:
                return
            with console.buffered() as buf:
                self._deploy_validator(node)
            with self._output_lock:
                console.print(buf.getvalue(), end="", markup=False, highlight=False)

    def _deploy_validators(self, validators: list[NodeSpec]) -> None:
        if not validators:
            return
        workers = min(self.options.max_workers, len(validators))
        console.print(Panel.fit(
            f"Deploying {len(validators)} validators ({workers} workers)", style="bold blue"
        ))
        pending: queue.Queue[NodeSpec] = queue.Queue()
        for node in validators:
            pending.put(node)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="validator") as executor:
            futures = [executor.submit(self._drain, pending) for _ in range(workers)]
            try:
                for future in as_completed(futures):
                    future.result()
            except KeyboardInterrupt:
                console.print("[yellow]\u26a0\ufe0f  Interrupted, finishing in-flight submissions...[/yellow]")
                self.context.cancel()
                wait(futures)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self) -> ClusterStatus:
        """Deploy all nodes and compute the terminal status.

        Returns:
            The ClusterStatus computed from the final DeploymentState.

        Raises:
            ConfigError: If the namespace is missing and may not be created.
            TransientApiError: If the namespace lookup keeps failing.
            KubeApiError: If the namespace lookup is rejected.
        """
        self._ensure_namespace()
        bootstrap, validators = self.nodes[0], self.nodes[1:]
        try:
            if not self._deploy_bootstrap(bootstrap):
                return ClusterStatus.from_state(self.state, reason="cancelled before bootstrap became ready",
                                                cancelled=True)
        except NodeDeploymentError as err:
            self._fail(bootstrap, err.reason)
            console.print(f"[red]\u274c {err}[/red]")
            return ClusterStatus.from_state(self.state, reason=str(err), cancelled=self.context.cancelled)
        except KeyboardInterrupt:
            self.context.cancel()
            return ClusterStatus.from_state(self.state, reason="interrupted", cancelled=True)
        except Exception as err:
            reason = f"unexpected error: {type(err).__name__}: {err}"
            logger.exception("deploying %s failed", bootstrap.name)
            self._fail(bootstrap, reason)
            console.print(f"[red]\u274c {bootstrap.name}: {reason}[/red]")
            return ClusterStatus.from_state(self.state, reason=f"{bootstrap.name}: {reason}",
                                            cancelled=self.context.cancelled)

        self._deploy_validators(validators)
        return ClusterStatus.from_state(self.state, cancelled=self.context.cancelled)
