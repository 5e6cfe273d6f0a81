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


"""deploy subcommand: genesis, bootstrap-first rollout, convergence check."""

from __future__ import annotations

from pathlib import Path

import typer

from solana_k8s_cluster.commands import options
from solana_k8s_cluster.config import resolve_config
from solana_k8s_cluster.workflow import run_deploy


def deploy(
    ctx: typer.Context,
    namespace: str | None = options.NAMESPACE,
    num_validators: int | None = options.NUM_VALIDATORS,
    bootstrap_image: str | None = options.BOOTSTRAP_IMAGE,
    validator_image: str | None = options.VALIDATOR_IMAGE,
    bootstrap_container: str | None = options.BOOTSTRAP_CONTAINER,
    validator_container: str | None = options.VALIDATOR_CONTAINER,
    bootstrap_cpu: str | None = options.BOOTSTRAP_CPU,
    bootstrap_memory: str | None = options.BOOTSTRAP_MEMORY,
    validator_cpu: str | None = options.VALIDATOR_CPU,
    validator_memory: str | None = options.VALIDATOR_MEMORY,
    cpu_limit: str | None = options.CPU_LIMIT,
    memory_limit: str | None = options.MEMORY_LIMIT,
    tpu_enable_udp: bool | None = options.TPU_ENABLE_UDP,
    tpu_disable_quic: bool | None = options.TPU_DISABLE_QUIC,
    gpu_mode: str | None = options.GPU_MODE,
    hashes_per_tick: str | None = options.HASHES_PER_TICK,
    slots_per_epoch: int | None = options.SLOTS_PER_EPOCH,
    target_lamports_per_signature: int | None = options.TARGET_LAMPORTS_PER_SIGNATURE,
    faucet_lamports: int | None = options.FAUCET_LAMPORTS,
    enable_warmup_epochs: bool | None = options.ENABLE_WARMUP_EPOCHS,
    max_genesis_archive_unpacked_size: int | None = options.MAX_GENESIS_ARCHIVE_UNPACKED_SIZE,
    cluster_type: str | None = options.CLUSTER_TYPE,
    bootstrap_validator_lamports: int | None = options.BOOTSTRAP_VALIDATOR_LAMPORTS,
    bootstrap_validator_stake_lamports: int | None = options.BOOTSTRAP_VALIDATOR_STAKE_LAMPORTS,
    internal_node_sol: float | None = options.INTERNAL_NODE_SOL,
    internal_node_stake_sol: float | None = options.INTERNAL_NODE_STAKE_SOL,
    work_dir: Path | None = options.WORK_DIR,
    max_workers: int | None = options.MAX_WORKERS,
    create_namespace: bool | None = options.CREATE_NAMESPACE,
    bootstrap_ready_timeout: float | None = options.BOOTSTRAP_READY_TIMEOUT,
    validator_ready_timeout: float | None = options.VALIDATOR_READY_TIMEOUT,
    verify_timeout: float | None = options.VERIFY_TIMEOUT,
    rpc_url: str | None = options.RPC_URL,
    skip_verify: bool | None = options.SKIP_VERIFY,
) -> None:
    """Build genesis and deploy a bootstrap validator plus N validators.

    Exits 0 only if every node became ready.
    """
    spec = resolve_config(**ctx.params)
    status = run_deploy(spec)
    raise typer.Exit(code=status.exit_code)
