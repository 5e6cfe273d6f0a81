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


"""Per-node deployment state and the terminal cluster status."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING

from solana_k8s_cluster.manifests import NodeSpec

if TYPE_CHECKING:
    from solana_k8s_cluster.verify import VerificationResult


class NodePhase(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    READY = "ready"
    FAILED = "failed"


_TRANSITIONS = {
    (NodePhase.PENDING, NodePhase.SUBMITTED),
    (NodePhase.SUBMITTED, NodePhase.READY),
    (NodePhase.SUBMITTED, NodePhase.FAILED),
}


class StateTransitionError(RuntimeError):
    """A transition that the node state machine does not allow."""


@dataclass(frozen=True)
class NodeRecord:
    phase: NodePhase = NodePhase.PENDING
    reason: str | None = None


class DeploymentState:
    """Phase of every node in one run.

    Each node entry has its own lock, so one writer at a time per node.
    Records are immutable and replaced whole, so readers never need a lock.
    Every accepted transition is appended to :meth:`trace`.
    """

    def __init__(self, nodes: Iterable[NodeSpec]) -> None:
        self._nodes = {node.name: node for node in nodes}
        bootstraps = [node.name for node in self._nodes.values() if node.is_bootstrap]
        if len(bootstraps) != 1:
            raise ValueError(f"expected exactly one bootstrap node, got {len(bootstraps)}")
        self.bootstrap = bootstraps[0]
        self._records = {name: NodeRecord() for name in self._nodes}
        self._locks = {name: threading.Lock() for name in self._nodes}
        self._trace_lock = threading.Lock()
        self._trace: list[tuple[str, NodePhase]] = []

    @property
    def nodes(self) -> list[NodeSpec]:
        return list(self._nodes.values())

    def phase(self, name: str) -> NodePhase:
        return self._records[name].phase

    def transition(self, name: str, phase: NodePhase, reason: str | None = None) -> None:
        """Move *name* to *phase*.

        Raises:
            StateTransitionError: If the transition is not allowed, or a
                validator would leave Pending before the bootstrap is Ready.
        """
        with self._locks[name]:
            current = self._records[name].phase
            if (current, phase) not in _TRANSITIONS:
                raise StateTransitionError(f"{name}: {current.value} -> {phase.value} is not allowed")
            if (
                name != self.bootstrap
                and current is NodePhase.PENDING
                and self.phase(self.bootstrap) is not NodePhase.READY
            ):
                raise StateTransitionError(f"{name}: cannot leave pending before {self.bootstrap} is ready")
            self._records[name] = NodeRecord(phase, reason)
            with self._trace_lock:
                self._trace.append((name, phase))

    def snapshot(self) -> dict[str, NodeRecord]:
        return dict(self._records)

    def trace(self) -> list[tuple[str, NodePhase]]:
        with self._trace_lock:
            return list(self._trace)


# ============================================================================
# Terminal status
# ============================================================================

class Outcome(str, Enum):
    CONVERGED = "converged"
    PARTIALLY_CONVERGED = "partially_converged"
    FAILED = "failed"


@dataclass(frozen=True)
class NodeReport:
    name: str
    role: str
    identity: str
    phase: NodePhase
    reason: str | None = None


@dataclass(frozen=True)
class ClusterStatus:
    """Terminal result of a run. Every node is listed by name and identity.

    Attributes:
        outcome: converged, partially_converged or failed.
        node_count: Number of nodes that reached Ready.
        validator_count: Number of Ready voting nodes, the bootstrap included.
        nodes: Final report for every node, bootstrap first.
        reason: Why the run failed, for the failed outcome.
        cancelled: True if the run was cancelled before completion.
        warnings: Non-fatal problems, such as a failed convergence check.
        verification: Result of the convergence check, if one ran.
    """

    outcome: Outcome
    node_count: int
    validator_count: int
    nodes: tuple[NodeReport, ...] = ()
    reason: str | None = None
    cancelled: bool = False
    warnings: tuple[str, ...] = ()
    verification: VerificationResult | None = None

    @property
    def ready(self) -> list[str]:
        return [node.name for node in self.nodes if node.phase is NodePhase.READY]

    @property
    def failed(self) -> dict[str, str]:
        return {node.name: node.reason or "" for node in self.nodes if node.phase is NodePhase.FAILED}

    @property
    def pending(self) -> list[str]:
        return [
            node.name for node in self.nodes
            if node.phase in (NodePhase.PENDING, NodePhase.SUBMITTED)
        ]

    @property
    def exit_code(self) -> int:
        return 0 if self.outcome is Outcome.CONVERGED else 1

    def with_warning(self, warning: str) -> ClusterStatus:
        return replace(self, warnings=(*self.warnings, warning))

    def with_verification(self, result: VerificationResult) -> ClusterStatus:
        return replace(self, verification=result)

    @classmethod
    def from_state(
        cls, state: DeploymentState, reason: str | None = None, cancelled: bool = False
    ) -> ClusterStatus:
        """Compute the terminal status from the final node phases.

        Converged iff every node is Ready; failed iff the bootstrap never
        became Ready; partially converged otherwise.
        """
        records = state.snapshot()
        reports = tuple(
            NodeReport(node.name, node.role, node.identity, records[node.name].phase, records[node.name].reason)
            for node in state.nodes
        )
        ready = sum(1 for report in reports if report.phase is NodePhase.READY)
        bootstrap = records[state.bootstrap]
        if bootstrap.phase is not NodePhase.READY:
            outcome = Outcome.FAILED
            if reason is None:
                reason = bootstrap.reason or f"{state.bootstrap} did not become ready"
        elif ready == len(reports):
            outcome = Outcome.CONVERGED
        else:
            outcome = Outcome.PARTIALLY_CONVERGED
        return cls(
            outcome=outcome,
            node_count=ready,
            validator_count=ready,
            nodes=reports,
            reason=reason,
            cancelled=cancelled,
        )
