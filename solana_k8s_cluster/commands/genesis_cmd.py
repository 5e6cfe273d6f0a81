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


"""genesis and render subcommands. Neither talks to Kubernetes."""

from __future__ import annotations

from pathlib import Path

import typer

from solana_k8s_cluster import console
from solana_k8s_cluster.commands import options
from solana_k8s_cluster.config import display_config, resolve_config
from solana_k8s_cluster.workflow import run_genesis, run_render


def genesis(
    ctx: typer.Context,
    num_validators: int | None = options.NUM_VALIDATORS,
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
) -> None:
    """Generate keypairs and the genesis ledger into the work directory."""
    spec = resolve_config(require_images=False, **ctx.params)
    display_config(spec)
    bundle = run_genesis(spec)
    console.print(f"  genesis hash  : {bundle.genesis_hash}")
    console.print(f"  shred version : {bundle.shred_version}")
    console.print(f"  artifact id   : {bundle.artifact_id}")
    for identity in bundle.identities:
        console.print(f"  {identity.name:<20}: {identity.pubkey} (stake {identity.stake_lamports})")


def render(
    ctx: typer.Context,
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the manifests here instead of stdout"),
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
) -> None:
    """Build genesis and print the Kubernetes manifests without applying them."""
    params = dict(ctx.params)
    params.pop("output")
    spec = resolve_config(**params)
    text = run_render(spec, output=output)
    if output is None:
        typer.echo(text, nl=False)
