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


"""verify subcommand: convergence check of an already deployed cluster."""

from __future__ import annotations

import typer

from solana_k8s_cluster import console
from solana_k8s_cluster.commands import options
from solana_k8s_cluster.config import resolve_config
from solana_k8s_cluster.errors import VerificationError
from solana_k8s_cluster.workflow import run_verify


def verify(
    ctx: typer.Context,
    namespace: str | None = options.NAMESPACE,
    num_validators: int | None = options.NUM_VALIDATORS,
    rpc_url: str | None = options.RPC_URL,
    verify_timeout: float | None = options.VERIFY_TIMEOUT,
) -> None:
    """Check that the bootstrap sees N+1 nodes in gossip."""
    spec = resolve_config(require_images=False, **ctx.params)
    try:
        run_verify(spec)
    except VerificationError as err:
        console.print(f"[red]\u274c {err}[/red]")
        raise typer.Exit(code=1) from err
