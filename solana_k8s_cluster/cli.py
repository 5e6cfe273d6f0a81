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


"""
cli.py - Deploy Solana validator test clusters onto Kubernetes.

Subcommands:
    deploy   Build genesis, deploy the bootstrap, then N validators, and verify
    genesis  Generate keypairs and the genesis ledger only
    render   Print the Kubernetes manifests without applying them
    verify   Check convergence of an already deployed cluster

Examples:
    # Bootstrap plus 5 validators in namespace "solana"
    solana-k8s-cluster deploy -n solana --num-validators 5 \\
        --bootstrap-image registry.example.com/solana/bootstrap:v1.18 \\
        --validator-image registry.example.com/solana/validator:v1.18

    # Inspect what would be created
    solana-k8s-cluster render -n solana --num-validators 5 ... -o cluster.yaml

    # Re-check gossip after the fact
    solana-k8s-cluster verify -n solana --num-validators 5

Every option can also be set through a SOLANA_K8S_<OPTION> environment
variable, e.g. SOLANA_K8S_NUM_VALIDATORS=5.
"""

from __future__ import annotations

import logging
import sys

import typer

from solana_k8s_cluster import __version__, console
from solana_k8s_cluster.commands import deploy_cmd, genesis_cmd, verify_cmd
from solana_k8s_cluster.errors import ClusterDeployError

app = typer.Typer(
    help="Deploy Solana validator test clusters onto Kubernetes.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    # The kubernetes client logs every request body at DEBUG.
    logging.getLogger("kubernetes").setLevel(logging.INFO)


app.command("deploy")(deploy_cmd.deploy)
app.command("genesis")(genesis_cmd.genesis)
app.command("render")(genesis_cmd.render)
app.command("verify")(verify_cmd.verify)


def main() -> None:
    """Console script entry point."""
    try:
        app()
    except ClusterDeployError as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
