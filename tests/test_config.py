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


"""Tests for configuration resolution and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from solana_k8s_cluster.config import ResourceSpec, resolve_config, validate_image, validate_namespace
from solana_k8s_cluster.constants import DEFAULT_FAUCET_LAMPORTS, LAMPORTS_PER_SOL
from solana_k8s_cluster.errors import ConfigError

from conftest import BOOTSTRAP_IMAGE, VALIDATOR_IMAGE


def _resolve(**overrides):
    overrides.setdefault("bootstrap_image", BOOTSTRAP_IMAGE)
    overrides.setdefault("validator_image", VALIDATOR_IMAGE)
    return resolve_config(**overrides)


class TestDefaults:
    def test_defaults_match_the_original_tool(self):
        spec = _resolve()
        assert spec.namespace == "default"
        assert spec.num_validators == 1
        assert spec.bootstrap.name == "bootstrap-container"
        assert spec.validator.name == "validator-container"
        assert spec.genesis.faucet_lamports == DEFAULT_FAUCET_LAMPORTS
        assert spec.genesis.max_genesis_archive_unpacked_size == 1_073_741_824
        assert spec.genesis.enable_warmup_epochs is True
        assert spec.genesis.cluster_type == "development"
        assert spec.genesis.bootstrap_validator_stake_lamports == 10 * LAMPORTS_PER_SOL
        assert spec.genesis.bootstrap_validator_lamports == 500 * LAMPORTS_PER_SOL
        assert spec.runtime.gpu_mode == "auto"
        assert spec.deploy.max_workers == 8
        assert spec.deploy.create_namespace is False
        assert spec.deploy.work_dir == Path("config")

    def test_expected_nodes_counts_the_bootstrap(self):
        assert _resolve(num_validators=0).expected_nodes == 1
        assert _resolve(num_validators=5).expected_nodes == 6

    def test_ready_policies_are_bounded_by_their_timeouts(self):
        spec = _resolve(bootstrap_ready_timeout=30, validator_ready_timeout=45, verify_timeout=20)
        assert spec.deploy.bootstrap_ready.timeout == 30
        assert spec.deploy.validator_ready.timeout == 45
        assert spec.deploy.verify.timeout == 20
        assert spec.deploy.api_retry.timeout is None
        assert spec.deploy.api_retry.max_attempts == 5


class TestPrecedence:
    def test_environment_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("SOLANA_K8S_NUM_VALIDATORS", "7")
        monkeypatch.setenv("SOLANA_K8S_NAMESPACE", "from-env")
        spec = _resolve()
        assert spec.num_validators == 7
        assert spec.namespace == "from-env"

    def test_explicit_override_beats_environment(self, monkeypatch):
        monkeypatch.setenv("SOLANA_K8S_NUM_VALIDATORS", "7")
        assert _resolve(num_validators=3).num_validators == 3

    def test_none_overrides_fall_through(self, monkeypatch):
        monkeypatch.setenv("SOLANA_K8S_MAX_WORKERS", "4")
        spec = _resolve(max_workers=None, namespace=None)
        assert spec.deploy.max_workers == 4
        assert spec.namespace == "default"

    def test_images_from_environment(self, monkeypatch):
        monkeypatch.setenv("SOLANA_K8S_BOOTSTRAP_IMAGE", "solana/bootstrap:dev")
        monkeypatch.setenv("SOLANA_K8S_VALIDATOR_IMAGE", "solana/validator:dev")
        spec = resolve_config()
        assert spec.bootstrap.image == "solana/bootstrap:dev"
        assert spec.validator.image == "solana/validator:dev"


class TestValidation:
    def test_negative_validator_count(self):
        with pytest.raises(ConfigError, match="num_validators"):
            _resolve(num_validators=-1)

    @pytest.mark.parametrize("namespace", ["", "Solana", "-solana", "solana-", "sol_ana", "a" * 64])
    def test_invalid_namespace(self, namespace):
        with pytest.raises(ConfigError):
            _resolve(namespace=namespace)

    @pytest.mark.parametrize("namespace", ["solana", "a", "test-cluster-1", "a" * 63])
    def test_valid_namespace(self, namespace):
        assert validate_namespace(namespace) == namespace

    @pytest.mark.parametrize("image", [
        "solana",
        "solana/validator:v1.18.0",
        "registry.example.com/solana/validator:v1.18.0",
        "localhost:5000/validator:latest",
        "registry:5000/validator",
        "ghcr.io/solana-labs/agave@sha256:" + "a" * 64,
    ])
    def test_valid_image(self, image):
        assert validate_image(image) == image

    @pytest.mark.parametrize("image", ["", "Solana/Validator", "solana:", "solana validator", "solana/:tag"])
    def test_invalid_image(self, image):
        with pytest.raises(ConfigError):
            _resolve(validator_image=image)

    def test_missing_image(self):
        with pytest.raises(ConfigError, match="bootstrap image"):
            resolve_config(validator_image=VALIDATOR_IMAGE)

    def test_images_optional_when_not_required(self):
        spec = resolve_config(require_images=False)
        assert spec.bootstrap.image is None

    def test_stake_cannot_exceed_funding(self):
        with pytest.raises(ConfigError, match="exceeds"):
            _resolve(internal_node_sol=5.0, internal_node_stake_sol=10.0)

    def test_unknown_option(self):
        with pytest.raises(ConfigError, match="unknown configuration option 'replicas'"):
            _resolve(replicas=3)

    @pytest.mark.parametrize("overrides", [
        {"cluster_type": "localnet"},
        {"gpu_mode": "maybe"},
        {"hashes_per_tick": "fast"},
        {"max_workers": 0},
        {"rpc_url": "bootstrap:8899"},
        {"validator_memory": "lots"},
    ])
    def test_out_of_range_values(self, overrides):
        with pytest.raises(ConfigError):
            _resolve(**overrides)

    @pytest.mark.parametrize("cluster_type", ["development", "devnet", "testnet", "mainnet-beta"])
    def test_cluster_types(self, cluster_type):
        assert _resolve(cluster_type=cluster_type).genesis.cluster_type == cluster_type

    @pytest.mark.parametrize("gpu_mode", ["on", "off", "auto", "cuda"])
    def test_gpu_modes(self, gpu_mode):
        assert _resolve(gpu_mode=gpu_mode).runtime.gpu_mode == gpu_mode

    def test_hashes_per_tick_accepts_a_number(self):
        assert _resolve(hashes_per_tick="12500").genesis.hashes_per_tick == "12500"


class TestGenesisAccounting:
    def test_total_stake_is_supply_minus_reserves(self):
        params = _resolve(internal_node_sol=100.0, internal_node_stake_sol=40.0).genesis
        n = 4
        assert params.total_stake(n) == params.bootstrap_validator_stake_lamports + n * 40 * LAMPORTS_PER_SOL
        assert params.total_supply(n) - params.reserved_lamports(n) == params.total_stake(n)

    def test_fractional_sol(self):
        params = _resolve(internal_node_sol=1.5, internal_node_stake_sol=0.25).genesis
        assert params.validator_lamports == 1_500_000_000
        assert params.validator_stake_lamports == 250_000_000


class TestResourceSpec:
    def test_requests_only(self):
        assert ResourceSpec("2", "4Gi").to_k8s() == {"requests": {"cpu": "2", "memory": "4Gi"}}

    def test_with_limits(self):
        resources = ResourceSpec("500m", "1Gi", cpu_limit="1", memory_limit="2Gi").to_k8s()
        assert resources["limits"] == {"cpu": "1", "memory": "2Gi"}
