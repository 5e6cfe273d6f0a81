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


"""Defaults, Kubernetes names and ports, and genesis constants."""

from __future__ import annotations

from pathlib import Path

LAMPORTS_PER_SOL = 1_000_000_000

# -- Genesis defaults --
DEFAULT_FAUCET_LAMPORTS = 500_000_000_000_000_000
DEFAULT_MAX_GENESIS_ARCHIVE_UNPACKED_SIZE = 1_073_741_824
DEFAULT_INTERNAL_NODE_STAKE_SOL = 10.0
DEFAULT_INTERNAL_NODE_SOL = 500.0
DEFAULT_BOOTSTRAP_NODE_STAKE_LAMPORTS = 10 * LAMPORTS_PER_SOL
DEFAULT_BOOTSTRAP_NODE_LAMPORTS = 500 * LAMPORTS_PER_SOL
DEFAULT_HASHES_PER_TICK = "auto"
DEFAULT_CLUSTER_TYPE = "development"

# -- External tools --
KEYGEN_TOOL = "solana-keygen"
GENESIS_TOOL = "solana-genesis"
REQUIRED_TOOLS = (KEYGEN_TOOL, GENESIS_TOOL)

# -- Genesis work directory layout --
DEFAULT_WORK_DIR = Path("config")
FAUCET_KEYPAIR = "faucet.json"
BOOTSTRAP_KEYPAIR_DIR = "bootstrap-validator"
LEDGER_DIR = "ledger"
GENESIS_ARCHIVE = "genesis.tar.bz2"
PRIMORDIAL_ACCOUNTS_FILE = "primordial-accounts.yml"
# Order matters: solana-genesis expects identity, vote, stake.
ACCOUNT_KINDS = ("identity", "vote-account", "stake-account")
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"

# ConfigMap objects are capped at 1 MiB by the API server.
CONFIG_MAP_MAX_BYTES = 1024 * 1024

# -- Node naming --
BOOTSTRAP_NAME = "bootstrap-validator"
VALIDATOR_NAME_PREFIX = "validator"
GENESIS_CONFIG_MAP = "genesis-config"
SECRET_SUFFIX = "accounts-secret"
ROLE_BOOTSTRAP = "bootstrap"
ROLE_VALIDATOR = "validator"

# -- Container defaults --
DEFAULT_NAMESPACE = "default"
DEFAULT_BOOTSTRAP_CONTAINER = "bootstrap-container"
DEFAULT_VALIDATOR_CONTAINER = "validator-container"
DEFAULT_CPU_REQUEST = "2"
DEFAULT_MEMORY_REQUEST = "4Gi"

# -- Ports --
GOSSIP_PORT = 8001
RPC_PORT = 8899
FAUCET_PORT = 9900
DYNAMIC_PORT_RANGE = "8002-8020"

# -- Mount paths inside validator containers --
GENESIS_MOUNT_PATH = "/home/solana/genesis"
KEYPAIR_MOUNT_PATH = "/home/solana/keys"

# -- Labels --
LABEL_NAME = "app.kubernetes.io/name"
LABEL_COMPONENT = "app.kubernetes.io/component"
LABEL_PART_OF = "app.kubernetes.io/part-of"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_GENESIS = "solana.com/genesis"
ANNOTATION_IDENTITY = "solana.com/identity"
PART_OF_VALUE = "solana-k8s-cluster"

# -- Deployment tuning defaults --
DEFAULT_MAX_WORKERS = 8
DEFAULT_API_MAX_ATTEMPTS = 5
DEFAULT_API_BASE_DELAY_SECONDS = 0.5
DEFAULT_API_MAX_DELAY_SECONDS = 8.0
DEFAULT_BOOTSTRAP_READY_TIMEOUT_SECONDS = 600.0
DEFAULT_VALIDATOR_READY_TIMEOUT_SECONDS = 900.0
DEFAULT_READY_BASE_DELAY_SECONDS = 1.0
DEFAULT_READY_MAX_DELAY_SECONDS = 15.0
DEFAULT_VERIFY_TIMEOUT_SECONDS = 300.0
DEFAULT_VERIFY_MAX_DELAY_SECONDS = 10.0
DEFAULT_RPC_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_KEYGEN_MAX_WORKERS = 8
TOOL_TIMEOUT_SECONDS = 300

# Pod waiting reasons that never resolve without a new NodeSpec.
TERMINAL_WAITING_REASONS = frozenset({
    "InvalidImageName",
    "ErrImageNeverPull",
    "CreateContainerConfigError",
    "CreateContainerError",
})

# API statuses retried with backoff. 409 is only retried when it is not
# an AlreadyExists conflict.
RETRYABLE_STATUSES = frozenset({409, 429, 503, 504})
