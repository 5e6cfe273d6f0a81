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


"""Tests for bootstrap-first orchestration, partial failure, and cancellation."""

from __future__ import annotations

from dataclasses import replace

import pytest

from solana_k8s_cluster.errors import ConfigError, KubeApiError, TransientApiError
from solana_k8s_cluster.manifests import build_node_specs
from solana_k8s_cluster.orchestrator import ClusterOrchestrator, RunContext, preflight
from solana_k8s_cluster.state import (
    ClusterStatus,
    DeploymentState,
    NodePhase,
    Outcome,
    StateTransitionError,
)

from conftest import FakeKubeClient


def _orchestrate(spec, bundle, kube, context=None):
    context = context or RunContext(namespace=spec.namespace, client=kube)
    orchestrator = ClusterOrchestrator(spec, bundle, context)
    return orchestrator, orchestrator.run()


def _assert_bootstrap_first(trace):
    ready_at = trace.index(("bootstrap-validator", NodePhase.READY))
    for position, (name, _phase) in enumerate(trace):
        if name != "bootstrap-validator":
            assert position > ready_at, f"{name} moved before the bootstrap was ready"


class TestDeploymentState:
    def _state(self, make_spec, build_bundle, num_validators=2):
        spec = make_spec(num_validators=num_validators)
        return DeploymentState(build_node_specs(spec, build_bundle(spec)))

    def test_all_nodes_start_pending(self, make_spec, build_bundle):
        state = self._state(make_spec, build_bundle)
        assert {record.phase for record in state.snapshot().values()} == {NodePhase.PENDING}
        assert state.trace() == []

    def test_validator_cannot_leave_pending_before_bootstrap_ready(self, make_spec, build_bundle):
        state = self._state(make_spec, build_bundle)
        with pytest.raises(StateTransitionError, match="before bootstrap-validator is ready"):
            state.transition("validator-0", NodePhase.SUBMITTED)
        state.transition("bootstrap-validator", NodePhase.SUBMITTED)
        with pytest.raises(StateTransitionError):
            state.transition("validator-0", NodePhase.SUBMITTED)
        state.transition("bootstrap-validator", NodePhase.READY)
        state.transition("validator-0", NodePhase.SUBMITTED)
        assert state.phase("validator-0") is NodePhase.SUBMITTED

    @pytest.mark.parametrize("path", [
        (NodePhase.READY,),
        (NodePhase.FAILED,),
        (NodePhase.SUBMITTED, NodePhase.PENDING),
        (NodePhase.SUBMITTED, NodePhase.READY, NodePhase.FAILED),
    ])
    def test_invalid_transitions(self, make_spec, build_bundle, path):
        state = self._state(make_spec, build_bundle)
        with pytest.raises(StateTransitionError):
            for phase in path:
                state.transition("bootstrap-validator", phase)

    def test_status_from_state(self, make_spec, build_bundle):
        state = self._state(make_spec, build_bundle, num_validators=3)
        state.transition("bootstrap-validator", NodePhase.SUBMITTED)
        state.transition("bootstrap-validator", NodePhase.READY)
        state.transition("validator-0", NodePhase.SUBMITTED)
        state.transition("validator-0", NodePhase.READY)
        state.transition("validator-1", NodePhase.SUBMITTED)
        state.transition("validator-1", NodePhase.FAILED, "boom")
        status = ClusterStatus.from_state(state)
        assert status.outcome is Outcome.PARTIALLY_CONVERGED
        assert status.ready == ["bootstrap-validator", "validator-0"]
        assert status.failed == {"validator-1": "boom"}
        assert status.pending == ["validator-2"]
        assert status.node_count == 2
        assert status.exit_code == 1


class TestPreflight:
    def test_missing_namespace_is_a_config_error(self, make_spec):
        spec = make_spec(namespace="absent")
        kube = FakeKubeClient()
        with pytest.raises(ConfigError, match="'absent' does not exist"):
            preflight(RunContext(namespace="absent", client=kube), spec)
        assert [call[0] for call in kube.calls] == ["namespace_exists"]

    def test_missing_namespace_is_created_when_allowed(self, make_spec, build_bundle, kube):
        spec = make_spec(namespace="fresh", num_validators=1, create_namespace=True)
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert ("create_namespace", "fresh") in kube.calls
        assert status.outcome is Outcome.CONVERGED

    def test_namespace_lookup_is_retried(self, make_spec):
        spec = make_spec()
        kube = FakeKubeClient()
        attempts = []
        original = kube.namespace_exists

        def flaky(namespace):
            attempts.append(namespace)
            if len(attempts) < 3:
                raise TransientApiError("rate limited", status=429)
            return original(namespace)

        kube.namespace_exists = flaky
        assert preflight(RunContext(namespace="solana", client=kube), spec) is True
        assert len(attempts) == 3


class TestConvergence:
    def test_zero_validators_converges_with_one_node(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=0)
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert status.outcome is Outcome.CONVERGED
        assert (status.node_count, status.validator_count) == (1, 1)
        assert status.exit_code == 0

    def test_five_validators_converge(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=5, max_workers=2)
        orchestrator, status = _orchestrate(spec, build_bundle(spec), kube)
        assert status.outcome is Outcome.CONVERGED
        assert (status.node_count, status.validator_count) == (6, 6)
        assert sorted(kube.applied_names("Deployment")) == sorted(
            ["bootstrap-validator"] + [f"validator-{i}" for i in range(5)]
        )
        assert kube.applied_names("ConfigMap") == ["genesis-config"]
        _assert_bootstrap_first(orchestrator.state.trace())

    def test_config_map_is_applied_before_the_bootstrap(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=1)
        _orchestrate(spec, build_bundle(spec), kube)
        assert kube.applied[:4] == [
            ("ConfigMap", "genesis-config"),
            ("Secret", "bootstrap-accounts-secret"),
            ("Service", "bootstrap-validator"),
            ("Deployment", "bootstrap-validator"),
        ]

    @pytest.mark.parametrize("max_workers", [1, 3, 8])
    def test_no_validator_moves_before_bootstrap_ready(self, make_spec, build_bundle, kube, max_workers):
        spec = make_spec(num_validators=6, max_workers=max_workers)
        orchestrator, status = _orchestrate(spec, build_bundle(spec), kube)
        trace = orchestrator.state.trace()
        _assert_bootstrap_first(trace)
        assert trace[:2] == [
            ("bootstrap-validator", NodePhase.SUBMITTED),
            ("bootstrap-validator", NodePhase.READY),
        ]
        assert status.outcome is Outcome.CONVERGED

    def test_rerun_is_idempotent(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        bundle = build_bundle(spec)
        _orchestrate(spec, bundle, kube)
        objects = dict(kube.objects)
        _, status = _orchestrate(spec, bundle, kube)
        assert status.outcome is Outcome.CONVERGED
        assert kube.objects == objects

    def test_transient_errors_are_retried(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        kube.failures["validator-1"] = [
            TransientApiError("conflict", status=409),
            TransientApiError("rate limited", status=429, retry_after=0),
        ]
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert status.outcome is Outcome.CONVERGED
        assert kube.calls.count(("apply", "Service", "validator-1")) == 3


class TestPartialFailure:
    @pytest.mark.parametrize("failing", [
        ["validator-3"],
        ["validator-0", "validator-4"],
        ["validator-1", "validator-2", "validator-3"],
    ])
    def test_k_failures_are_reported(self, make_spec, build_bundle, kube, failing):
        spec = make_spec(num_validators=5, max_workers=2)
        for name in failing:
            kube.failures[name] = [KubeApiError(f"Deployment {name} invalid", status=422)]
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert status.outcome is Outcome.PARTIALLY_CONVERGED
        assert sorted(status.failed) == sorted(failing)
        assert "bootstrap-validator" in status.ready
        assert status.node_count == 6 - len(failing)
        assert status.exit_code == 1

    def test_exhausted_retries_fail_the_node(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        kube.failures["validator-0"] = [TransientApiError("server busy", status=503)] * 3
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert list(status.failed) == ["validator-0"]
        assert "after 3 attempts" in status.failed["validator-0"]

    def test_failed_nodes_are_listed_by_identity(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        bundle = build_bundle(spec)
        kube.failures["validator-1"] = [KubeApiError("forbidden", status=403)]
        _, status = _orchestrate(spec, bundle, kube)
        report = next(node for node in status.nodes if node.name == "validator-1")
        assert report.identity == bundle.identity("validator-1").pubkey
        assert report.phase is NodePhase.FAILED

    def test_unrecoverable_pod_state_fails_early(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        kube.never_ready.add("validator-1")
        kube.waiting_reasons["validator-1"] = ["InvalidImageName"]
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert "InvalidImageName" in status.failed["validator-1"]
        assert kube.calls.count(("deployment_ready", "validator-1")) == 1

    def test_validator_readiness_timeout(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        kube.never_ready.add("validator-0")
        kube.waiting_reasons["validator-0"] = ["ImagePullBackOff"]
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert status.outcome is Outcome.PARTIALLY_CONVERGED
        assert "not ready after 4 checks" in status.failed["validator-0"]

    def test_unexpected_error_fails_only_that_validator(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=3)
        kube.failures["validator-1-accounts-secret"] = [ValueError("boom")]
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert status.outcome is Outcome.PARTIALLY_CONVERGED
        assert status.failed == {"validator-1": "unexpected error: ValueError: boom"}
        assert sorted(status.ready) == ["bootstrap-validator", "validator-0", "validator-2"]

    def test_unexpected_readiness_error_is_recorded(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        original = kube.deployment_ready

        def broken_status(namespace, name):
            if name == "validator-0":
                raise AttributeError("'NoneType' object has no attribute 'ready_replicas'")
            return original(namespace, name)

        kube.deployment_ready = broken_status
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert list(status.failed) == ["validator-0"]
        assert "AttributeError" in status.failed["validator-0"]
        assert "validator-1" in status.ready


class TestBootstrapFailure:
    def test_bootstrap_timeout_is_fatal(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=4)
        kube.never_ready.add("bootstrap-validator")
        orchestrator, status = _orchestrate(spec, build_bundle(spec), kube)
        assert status.outcome is Outcome.FAILED
        assert "not ready after 4 checks" in status.reason
        assert status.failed == {"bootstrap-validator": "not ready after 4 checks"}
        assert sorted(status.pending) == [f"validator-{i}" for i in range(4)]
        assert all(name == "bootstrap-validator" for name, _ in orchestrator.state.trace())
        assert not any(name.startswith("validator-") for _, name in kube.applied)
        assert status.exit_code == 1

    def test_bootstrap_create_rejected(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        kube.failures["bootstrap-validator"] = [KubeApiError("admission webhook denied", status=400)]
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert status.outcome is Outcome.FAILED
        assert "admission webhook denied" in status.reason
        assert kube.applied_names("Deployment") == []

    def test_unexpected_bootstrap_error(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        kube.failures["bootstrap-validator"] = [RuntimeError("connection pool closed")]
        _, status = _orchestrate(spec, build_bundle(spec), kube)
        assert status.outcome is Outcome.FAILED
        assert status.failed == {"bootstrap-validator": "unexpected error: RuntimeError: connection pool closed"}
        assert "connection pool closed" in status.reason
        assert sorted(status.pending) == ["validator-0", "validator-1"]
        assert not any(name.startswith("validator-") for _, name in kube.applied)


class TestCancellation:
    def test_cancel_stops_new_submissions(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=4, max_workers=1)
        context = RunContext(namespace=spec.namespace, client=kube)

        def cancel_on_first_validator(manifest):
            if manifest["kind"] == "Deployment" and manifest["metadata"]["name"] == "validator-0":
                context.cancel()

        kube.on_apply = cancel_on_first_validator
        orchestrator, status = _orchestrate(spec, build_bundle(spec), kube, context)
        assert status.cancelled
        assert status.outcome is Outcome.PARTIALLY_CONVERGED
        # the in-flight node finished its creates; nothing else was started
        assert kube.applied_names("Deployment") == ["bootstrap-validator", "validator-0"]
        records = orchestrator.state.snapshot()
        for name in ("validator-1", "validator-2", "validator-3"):
            assert records[name].phase is NodePhase.PENDING
        assert {"validator-1", "validator-2", "validator-3"} <= set(status.pending)

    def test_cancel_before_bootstrap_ready(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        context = RunContext(namespace=spec.namespace, client=kube)
        kube.never_ready.add("bootstrap-validator")
        original = kube.deployment_ready

        def cancel_while_polling(namespace, name):
            context.cancel()
            return original(namespace, name)

        kube.deployment_ready = cancel_while_polling
        _, status = _orchestrate(spec, build_bundle(spec), kube, context)
        assert status.cancelled
        assert status.outcome is Outcome.FAILED
        assert not context.bootstrap_ready.is_set()
        assert kube.applied_names("Deployment") == ["bootstrap-validator"]

    def test_interrupt_during_validators(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=4, max_workers=1)
        context = RunContext(namespace=spec.namespace, client=kube)

        def interrupt_on_first_validator(manifest):
            if manifest["kind"] == "Deployment" and manifest["metadata"]["name"] == "validator-0":
                raise KeyboardInterrupt

        kube.on_apply = interrupt_on_first_validator
        orchestrator, status = _orchestrate(spec, build_bundle(spec), kube, context)
        assert context.cancelled
        assert status.cancelled
        assert status.outcome is Outcome.PARTIALLY_CONVERGED
        assert status.ready == ["bootstrap-validator"]
        assert status.failed == {}
        assert kube.applied_names("Deployment") == ["bootstrap-validator"]
        records = orchestrator.state.snapshot()
        assert records["validator-0"].phase is NodePhase.SUBMITTED
        for name in ("validator-1", "validator-2", "validator-3"):
            assert records[name].phase is NodePhase.PENDING

    def test_interrupt_during_bootstrap(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=2)
        context = RunContext(namespace=spec.namespace, client=kube)

        def interrupt_on_bootstrap(manifest):
            if manifest["kind"] == "Deployment":
                raise KeyboardInterrupt

        kube.on_apply = interrupt_on_bootstrap
        orchestrator, status = _orchestrate(spec, build_bundle(spec), kube, context)
        assert status.cancelled
        assert status.outcome is Outcome.FAILED
        assert status.reason == "interrupted"
        assert orchestrator.state.phase("bootstrap-validator") is NodePhase.SUBMITTED
        assert not context.bootstrap_ready.is_set()
        assert kube.applied_names("Deployment") == []

    def test_explicit_nodes_are_used(self, make_spec, build_bundle, kube):
        spec = make_spec(num_validators=3)
        bundle = build_bundle(spec)
        nodes = build_node_specs(spec, bundle)[:2]
        context = RunContext(namespace=spec.namespace, client=kube)
        status = ClusterOrchestrator(replace(spec, num_validators=1), bundle, context, nodes).run()
        assert status.node_count == 2
