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


"""Utility functions for command checks, naming, and serialization."""

from __future__ import annotations

import base64
import hashlib

import sh

from solana_k8s_cluster.constants import BOOTSTRAP_NAME, SECRET_SUFFIX, VALIDATOR_NAME_PREFIX


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def validator_name(index: int) -> str:
    """Kubernetes object name of the validator with zero-based *index*."""
    return f"{VALIDATOR_NAME_PREFIX}-{index}"


def secret_name(node_name: str) -> str:
    """Name of the Secret holding the keypairs of *node_name*."""
    if node_name == BOOTSTRAP_NAME:
        return f"bootstrap-{SECRET_SUFFIX}"
    return f"{node_name}-{SECRET_SUFFIX}"


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
