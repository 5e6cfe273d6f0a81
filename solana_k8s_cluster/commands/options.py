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


"""Shared CLI options.

Every option defaults to None so that values not given on the command line
fall through to SOLANA_K8S_* environment variables and then to defaults.
Option names match the resolve_config() keywords, so commands pass
``ctx.params`` straight through.
"""

from __future__ import annotations

import typer

# ============================================================================
# Cluster
# ============================================================================

NAMESPACE = typer.Option(None, "--namespace", "-n", help="Kubernetes namespace to deploy into [default: default]")
NUM_VALIDATORS = typer.Option(None, "--num-validators", help="Validators besides the bootstrap [default: 1]")
BOOTSTRAP_IMAGE = typer.Option(None, "--bootstrap-image", help="Bootstrap validator image reference")
VALIDATOR_IMAGE = typer.Option(None, "--validator-image", help="Validator image reference")
BOOTSTRAP_CONTAINER = typer.Option(None, "--bootstrap-container", help="Bootstrap container name")
VALIDATOR_CONTAINER = typer.Option(None, "--validator-container", help="Validator container name")
BOOTSTRAP_CPU = typer.Option(None, "--bootstrap-cpu", help="Bootstrap CPU request")
BOOTSTRAP_MEMORY = typer.Option(None, "--bootstrap-memory", help="Bootstrap memory request")
VALIDATOR_CPU = typer.Option(None, "--validator-cpu", help="CPU request per validator")
VALIDATOR_MEMORY = typer.Option(None, "--validator-memory", help="Memory request per validator")
CPU_LIMIT = typer.Option(None, "--cpu-limit", help="CPU limit for every node")
MEMORY_LIMIT = typer.Option(None, "--memory-limit", help="Memory limit for every node")
TPU_ENABLE_UDP = typer.Option(None, "--tpu-enable-udp/--no-tpu-enable-udp", help="Enable UDP for TPU transactions")
TPU_DISABLE_QUIC = typer.Option(
    None, "--tpu-disable-quic/--no-tpu-disable-quic", help="Disable QUIC for TPU packet forwarding")
GPU_MODE = typer.Option(None, "--gpu-mode", help="GPU mode: on, off, auto or cuda")

# ============================================================================
# Genesis
# ============================================================================

HASHES_PER_TICK = typer.Option(None, "--hashes-per-tick", help="auto, sleep or a number of hashes")
SLOTS_PER_EPOCH = typer.Option(None, "--slots-per-epoch", help="Slots per epoch")
TARGET_LAMPORTS_PER_SIGNATURE = typer.Option(
    None, "--target-lamports-per-signature", help="Target fee per signature")
FAUCET_LAMPORTS = typer.Option(None, "--faucet-lamports", help="Lamports minted to the faucet")
ENABLE_WARMUP_EPOCHS = typer.Option(
    None, "--enable-warmup-epochs/--no-enable-warmup-epochs", help="Start with short, growing epochs")
MAX_GENESIS_ARCHIVE_UNPACKED_SIZE = typer.Option(
    None, "--max-genesis-archive-unpacked-size", help="Maximum unpacked genesis archive size in bytes")
CLUSTER_TYPE = typer.Option(None, "--cluster-type", help="development, devnet, testnet or mainnet-beta")
BOOTSTRAP_VALIDATOR_LAMPORTS = typer.Option(
    None, "--bootstrap-validator-lamports", help="Balance of the bootstrap identity")
BOOTSTRAP_VALIDATOR_STAKE_LAMPORTS = typer.Option(
    None, "--bootstrap-validator-stake-lamports", help="Stake delegated to the bootstrap")
INTERNAL_NODE_SOL = typer.Option(None, "--internal-node-sol", help="Funding of each validator identity in SOL")
INTERNAL_NODE_STAKE_SOL = typer.Option(None, "--internal-node-stake-sol", help="Stake of each validator in SOL")
WORK_DIR = typer.Option(None, "--work-dir", help="Directory for keypairs and the genesis ledger [default: config]")

# ============================================================================
# Deployment
# ============================================================================

MAX_WORKERS = typer.Option(None, "--max-workers", help="Concurrent validator submissions [default: 8]")
CREATE_NAMESPACE = typer.Option(
    None, "--create-namespace/--no-create-namespace", help="Create the namespace if it does not exist")
BOOTSTRAP_READY_TIMEOUT = typer.Option(
    None, "--bootstrap-ready-timeout", help="Seconds to wait for the bootstrap [default: 600]")
VALIDATOR_READY_TIMEOUT = typer.Option(
    None, "--validator-ready-timeout", help="Seconds to wait for each validator [default: 900]")
VERIFY_TIMEOUT = typer.Option(None, "--verify-timeout", help="Seconds to poll for convergence [default: 300]")
RPC_URL = typer.Option(
    None, "--rpc-url",
    help="RPC endpoint used for verification [default: bootstrap Service through the API server proxy]")
SKIP_VERIFY = typer.Option(None, "--skip-verify/--verify", help="Skip the convergence check")
