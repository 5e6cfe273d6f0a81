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


from __future__ import annotations

import hashlib
import json
import os
import threading
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

import pytest
import requests

from solana_k8s_cluster.backoff import BackoffPolicy
from solana_k8s_cluster.config import ClusterSpec, resolve_config
from solana_k8s_cluster.constants import LABEL_NAME
from solana_k8s_cluster.errors import GenesisError, TransientApiError
from solana_k8s_cluster.genesis import GenesisBuilder, GenesisBundle

BASE58 = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
GENESIS_HASH = "4uhcVJyU9pJkvQyS88uRDiswHXSCkY3zQawwpjk2NsNY"
SHRED_VERSION = 44533
ARCHIVE = b"BZh91AY&SY fake genesis archive"

BOOTSTRAP_IMAGE = "registry.example.com/solana/bootstrap:v1.18.0"
VALIDATOR_IMAGE = "registry.example.com/solana/validator:v1.18.0"


def fake_pubkey(seed: str) -> str:
    digest = hashlib.sha512(seed.encode()).digest()
    return "".join(BASE58[b % 58] for b in digest[:44])


# ============================================================================
# Genesis tools
# ============================================================================

class FakeToolRunner:
    """Stands in for solana-keygen and solana-genesis.

    Writes keypair files and the genesis archive where the real tools would,
    and records every invocation.
    """

    def __init__(
        self,
        archive: bytes = ARCHIVE,
        genesis_output: str | None = None,
        fail: dict[str, GenesisError] | None = None,
    ) -> None:
        self.archive = archive
        self.genesis_output = genesis_output
        self.fail = fail or {}
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self._lock = threading.Lock()

    def run(self, tool: str, *args: str) -> str:
        with self._lock:
            self.calls.append((tool, args))
        if tool in self.fail:
            raise self.fail[tool]
        if tool == "solana-keygen" and args[0] == "new":
            outfile = Path(args[-1])
            outfile.write_text(json.dumps(list(hashlib.sha512(str(outfile).encode()).digest())))
            return ""
        if tool == "solana-keygen" and args[0] == "pubkey":
            return fake_pubkey(Path(args[1]).name) + "\n"
        if tool == "solana-genesis":
            ledger = Path(args[args.index("--ledger") + 1])
            ledger.mkdir(parents=True, exist_ok=True)
            (ledger / "genesis.tar.bz2").write_bytes(self.archive)
            if self.genesis_output is not None:
                return self.genesis_output
            return (
                "Creation time: 2026-10-19T07:00:00+00:00\n"
                "Cluster type: Development\n"
                f"Genesis hash: {GENESIS_HASH}\n"
                f"Shred version: {SHRED_VERSION}\n"
            )
        raise AssertionError(f"unexpected tool call {tool} {args}")

    def count(self, tool: str, subcommand: str | None = None) -> int:
        return sum(
            1 for name, args in self.calls
            if name == tool and (subcommand is None or args[0] == subcommand)
        )


# ============================================================================
# Kubernetes
# ============================================================================

class FakeKubeClient:
    """In-memory KubeClient with failure injection.

    Attributes:
        failures: Object name -> exceptions raised by successive applies of it.
        never_ready: Deployments that never report ready.
        waiting_reasons: Node name -> pod waiting reasons.
        on_apply: Optional hook called with every manifest before it is stored.
        rpc: Answers JSON-RPC sent through the service proxy; None means the
            proxy reports the service unavailable.
    """

    def __init__(self, namespaces: tuple[str, ...] = ("default", "solana")) -> None:
        self.namespaces = set(namespaces)
        self.objects: dict[tuple[str, str, str], dict] = {}
        self.calls: list[tuple[str, ...]] = []
        self.applied: list[tuple[str, str]] = []
        self.failures: dict[str, list[Exception]] = {}
        self.never_ready: set[str] = set()
        self.waiting_reasons: dict[str, list[str]] = {}
        self.reported_ready: list[str] = []
        self.on_apply: Callable[[dict], None] | None = None
        self.rpc: FakeRpcSession | None = None
        self._lock = threading.Lock()

    def _record(self, *call: str) -> None:
        with self._lock:
            self.calls.append(call)

    def namespace_exists(self, namespace: str) -> bool:
        self._record("namespace_exists", namespace)
        return namespace in self.namespaces

    def create_namespace(self, namespace: str) -> None:
        self._record("create_namespace", namespace)
        self.namespaces.add(namespace)

    def apply(self, manifest: dict) -> str:
        kind, meta = manifest["kind"], manifest["metadata"]
        self._record("apply", kind, meta["name"])
        if self.on_apply is not None:
            self.on_apply(manifest)
        with self._lock:
            pending = self.failures.get(meta["name"])
            error = pending.pop(0) if pending else None
        if error is not None:
            raise error
        key = (kind, meta["namespace"], meta["name"])
        with self._lock:
            existed = key in self.objects
            self.objects[key] = manifest
            self.applied.append((kind, meta["name"]))
        return "configured" if existed else "created"

    def deployment_ready(self, namespace: str, name: str) -> bool:
        self._record("deployment_ready", name)
        if name in self.never_ready or ("Deployment", namespace, name) not in self.objects:
            return False
        with self._lock:
            self.reported_ready.append(name)
        return True

    def pod_waiting_reasons(self, namespace: str, selector: dict[str, str]) -> list[str]:
        self._record("pod_waiting_reasons", selector[LABEL_NAME])
        return list(self.waiting_reasons.get(selector[LABEL_NAME], []))

    def service_proxy_post(self, namespace: str, service: str, port: int, body: dict) -> dict:
        self._record("service_proxy_post", f"{service}:{port}")
        if self.rpc is None:
            raise TransientApiError(f"service {service} has no ready endpoints", status=503)
        return self.rpc.post(f"proxy://{namespace}/{service}:{port}", json=body, timeout=0).json()

    def applied_names(self, kind: str) -> list[str]:
        return [name for applied_kind, name in self.applied if applied_kind == kind]


# ============================================================================
# JSON-RPC
# ============================================================================

class FakeResponse:
    def __init__(self, body: dict, status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> dict:
        return self.body


class FakeRpcSession:
    """requests.Session stand-in answering getClusterNodes and getVoteAccounts.

    ``node_counts`` is consumed one entry per getClusterNodes call; the last
    entry repeats. ``unreachable`` makes every call raise ConnectionError.
    """

    def __init__(self, node_counts: list[int] | tuple[int, ...] = (1,), unreachable: bool = False,
                 error: dict | None = None) -> None:
        self.node_counts = list(node_counts)
        self.unreachable = unreachable
        self.error = error
        self.requests: list[tuple[str, str]] = []
        self._current = self.node_counts[0]

    def post(self, url: str, json: dict, timeout: float) -> FakeResponse:
        method = json["method"]
        self.requests.append((url, method))
        if self.unreachable:
            raise requests.ConnectionError(f"cannot connect to {url}")
        if self.error is not None:
            return FakeResponse({"jsonrpc": "2.0", "id": json["id"], "error": self.error})
        if method == "getClusterNodes":
            self._current = self.node_counts.pop(0) if len(self.node_counts) > 1 else self.node_counts[0]
            result = [{"pubkey": fake_pubkey(f"peer-{i}"), "gossip": f"10.0.0.{i}:8001"}
                      for i in range(self._current)]
        elif method == "getVoteAccounts":
            result = {"current": [{"nodePubkey": fake_pubkey(f"peer-{i}")} for i in range(self._current)],
                      "delinquent": []}
        else:
            raise AssertionError(f"unexpected RPC method {method}")
        return FakeResponse({"jsonrpc": "2.0", "id": json["id"], "result": result})


# ============================================================================
# Fixtures
# ============================================================================

def no_sleep(_seconds: float) -> None:
    return None


FAST = BackoffPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, sleep=no_sleep)


def fast(spec: ClusterSpec, **policies: BackoffPolicy) -> ClusterSpec:
    """Replace every backoff policy of *spec* with a zero-delay one."""
    deploy = replace(
        spec.deploy,
        api_retry=policies.get("api_retry", FAST),
        bootstrap_ready=policies.get("bootstrap_ready", replace(FAST, max_attempts=4)),
        validator_ready=policies.get("validator_ready", replace(FAST, max_attempts=4)),
        verify=policies.get("verify", replace(FAST, max_attempts=5)),
    )
    return replace(spec, deploy=deploy)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("SOLANA_K8S_"):
            monkeypatch.delenv(key)


@pytest.fixture
def make_spec(tmp_path: Path):
    def _make(num_validators: int = 2, **overrides) -> ClusterSpec:
        overrides.setdefault("namespace", "solana")
        overrides.setdefault("bootstrap_image", BOOTSTRAP_IMAGE)
        overrides.setdefault("validator_image", VALIDATOR_IMAGE)
        overrides.setdefault("work_dir", tmp_path / "config")
        return fast(resolve_config(num_validators=num_validators, **overrides))

    return _make


@pytest.fixture
def runner() -> FakeToolRunner:
    return FakeToolRunner()


@pytest.fixture
def kube() -> FakeKubeClient:
    return FakeKubeClient()


@pytest.fixture
def build_bundle(runner: FakeToolRunner):
    def _build(spec: ClusterSpec) -> GenesisBundle:
        return GenesisBuilder(spec, runner).build()

    return _build
