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


"""Workflow functions that compose the domain modules into commands."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from rich.panel import Panel
from rich.table import Table

from solana_k8s_cluster import console
from solana_k8s_cluster.config import ClusterSpec, display_config, resolve_config
from solana_k8s_cluster.constants import REQUIRED_TOOLS
from solana_k8s_cluster.errors import GenesisError, VerificationError
from solana_k8s_cluster.genesis import GenesisBuilder, GenesisBundle, ToolRunner
from solana_k8s_cluster.kube import KubeClient, KubernetesClient
from solana_k8s_cluster.manifests import build_node_specs, render_manifests
from solana_k8s_cluster.orchestrator import ClusterOrchestrator, RunContext, preflight
from solana_k8s_cluster.state import ClusterStatus, NodePhase, Outcome
from solana_k8s_cluster.utils import require_command
from solana_k8s_cluster.verify import ConvergenceVerifier, VerificationResult

# ============================================================================
# Internal helpers
# ============================================================================


def _check_prerequisites() -> None:
    """Check that the genesis tools are on PATH.

    Raises:
        GenesisError: If a tool is missing.
    """
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    for cmd in REQUIRED_TOOLS:
        try:
            require_command(cmd)
        except RuntimeError as err:
            raise GenesisError(str(err), tool=cmd) from err
    console.print("[green]\u2705 All required tools are available[/green]")


_PHASE_STYLES = {
    NodePhase.READY: "green",
    NodePhase.FAILED: "red",
    NodePhase.SUBMITTED: "yellow",
    NodePhase.PENDING: "dim",
}

_OUTCOME_STYLES = {
    Outcome.CONVERGED: "bold green",
    Outcome.PARTIALLY_CONVERGED: "bold yellow",
    Outcome.FAILED: "bold red",
}


def display_status(status: ClusterStatus) -> None:
    """Print the per-node table and the overall outcome.

    Args:
        status: Terminal status of a run.
    """
    table = Table(title="Nodes", show_lines=False)
    table.add_column("Node")
    table.add_column("Role")
    table.add_column("Identity")
    table.add_column("Phase")
    table.add_column("Reason", overflow="fold")
    for node in status.nodes:
        style = _PHASE_STYLES[node.phase]
        table.add_row(node.name, node.role, node.identity, f"[{style}]{node.phase.value}[/{style}]", node.reason or "")
    console.print(table)

    summary = (
        f"{status.outcome.value}: {status.node_count}/{len(status.nodes)} nodes ready, "
        f"{len(status.failed)} failed, {len(status.pending)} pending"
    )
    if status.cancelled:
        summary += " (cancelled)"
    if status.reason:
        summary += f"\n{status.reason}"
    console.print(Panel.fit(summary, style=_OUTCOME_STYLES[status.outcome]))
    for warning in status.warnings:
        console.print(f"[yellow]\u26a0\ufe0f  {warning}[/yellow]")


# ============================================================================
# Public API
# ============================================================================


def run_genesis(spec: ClusterSpec, runner: ToolRunner | None = None) -> GenesisBundle:
    """Build the genesis bundle for *spec*.

    Args:
        spec: Resolved cluster spec.
        runner: Tool runner; defaults to the real one after a PATH check.

    Returns:
        The checked GenesisBundle.

    Raises:
        GenesisError: If a tool is missing or fails.
    """
    if runner is None:
        _check_prerequisites()
        runner = ToolRunner()
    return GenesisBuilder(spec, runner).build()


def run_render(spec: ClusterSpec, runner: ToolRunner | None = None, output: Path | None = None) -> str:
    """Build genesis and render every manifest without talking to Kubernetes.

    Args:
        spec: Resolved cluster spec.
        runner: Tool runner, or None for the real one.
        output: File to write the YAML to, or None to only return it.

    Returns:
        The multi-document YAML.
    """
    bundle = run_genesis(spec, runner)
    text = render_manifests(spec, bundle)
    if output is not None:
        output.write_text(text)
        console.print(f"[green]\u2705 Manifests written to {output}[/green]")
    return text


def run_verify(spec: ClusterSpec, endpoint: str | None = None,
               verifier: ConvergenceVerifier | None = None,
               client: KubeClient | None = None) -> VerificationResult:
    """Check convergence of an already deployed cluster.

    Without an RPC URL the bootstrap is queried through the API server, using
    *client* or one loaded from kubeconfig.

    Raises:
        VerificationError: If the cluster has not converged.
    """
    if verifier is None:
        if client is None and not (endpoint or spec.deploy.rpc_url):
            client = KubernetesClient()
        verifier = ConvergenceVerifier(spec.deploy.verify, client=client)
    return verifier.verify(spec, endpoint)


def run_deploy(
    spec: ClusterSpec,
    *,
    client: KubeClient | None = None,
    runner: ToolRunner | None = None,
    verifier: ConvergenceVerifier | None = None,
    context: RunContext | None = None,
) -> ClusterStatus:
    """Run the full pipeline: preflight, genesis, orchestration, verification.

    Nothing is created in Kubernetes unless the namespace check and the
    genesis build both succeed.

    Args:
        spec: Resolved cluster spec.
        client: Kubernetes client; defaults to one loaded from kubeconfig.
        runner: Genesis tool runner; defaults to the real tools.
        verifier: Convergence verifier; defaults to JSON-RPC through the API
            server proxy, or to ``--rpc-url`` when set.
        context: Run context, for callers that want to cancel the run.

    Returns:
        The terminal ClusterStatus. Verification problems are attached as
        warnings and do not change the outcome.

    Raises:
        ConfigError: If the namespace is missing and may not be created.
        GenesisError: If the genesis bundle cannot be built.
    """
    display_config(spec)
    if context is None:
        context = RunContext(namespace=spec.namespace, client=client or KubernetesClient())
    preflight(context, spec)

    bundle = run_genesis(spec, runner)
    nodes = build_node_specs(spec, bundle)
    status = ClusterOrchestrator(spec, bundle, context, nodes).run()

    if status.outcome is Outcome.CONVERGED and not spec.deploy.skip_verify and not status.cancelled:
        try:
            status = status.with_verification(run_verify(spec, verifier=verifier, client=context.client))
        except VerificationError as err:
            status = status.with_warning(f"convergence check failed: {err}")

    display_status(status)
    return status


def deploy(
    *,
    client: KubeClient | None = None,
    runner: ToolRunner | None = None,
    verifier: ConvergenceVerifier | None = None,
    **overrides: Any,
) -> ClusterStatus:
    """Resolve configuration from *overrides* and run :func:`run_deploy`.

    Raises:
        ConfigError: Before any tool or API call if the configuration is invalid.
    """
    spec = resolve_config(**overrides)
    return run_deploy(spec, client=client, runner=runner, verifier=verifier)
