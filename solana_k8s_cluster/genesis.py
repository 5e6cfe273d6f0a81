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


"""Genesis bundle construction through the external solana tools."""

from __future__ import annotations

import re
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

import sh
import yaml
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from solana_k8s_cluster import console, logger
from solana_k8s_cluster.config import ClusterSpec
from solana_k8s_cluster.constants import (
    ACCOUNT_KINDS,
    BOOTSTRAP_KEYPAIR_DIR,
    BOOTSTRAP_NAME,
    CONFIG_MAP_MAX_BYTES,
    DEFAULT_KEYGEN_MAX_WORKERS,
    FAUCET_KEYPAIR,
    GENESIS_ARCHIVE,
    GENESIS_TOOL,
    KEYGEN_TOOL,
    LEDGER_DIR,
    PRIMORDIAL_ACCOUNTS_FILE,
    ROLE_BOOTSTRAP,
    ROLE_VALIDATOR,
    SYSTEM_PROGRAM_ID,
    TOOL_TIMEOUT_SECONDS,
)
from solana_k8s_cluster.errors import GenesisError
from solana_k8s_cluster.utils import b64, sha256_hex, validator_name

PUBKEY_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
GENESIS_HASH_PATTERN = re.compile(r"^Genesis hash:\s*([1-9A-HJ-NP-Za-km-z]{32,44})\s*$", re.MULTILINE)
SHRED_VERSION_PATTERN = re.compile(r"^Shred version:\s*(\d+)\s*$", re.MULTILINE)
VALIDATOR_KEYPAIR_PATTERN = re.compile(rf"^validator-({'|'.join(map(re.escape, ACCOUNT_KINDS))})-\d+\.json$")


# ============================================================================
# Bundle model
# ============================================================================

@dataclass(frozen=True)
class NodeIdentity:
    """Keypairs and lamport allocation of one node.

    Attributes:
        name: Node name (``bootstrap-validator`` or ``validator-<i>``).
        role: ``bootstrap`` or ``validator``.
        pubkey: Base58 identity pubkey.
        keypairs: Secret key file name to base64 encoded keypair JSON.
        stake_lamports: Stake assigned to the node.
        funding_lamports: Spendable balance of the identity account.
    """

    name: str
    role: str
    pubkey: str
    keypairs: dict[str, str] = field(default_factory=dict)
    stake_lamports: int = 0
    funding_lamports: int = 0


@dataclass(frozen=True)
class GenesisBundle:
    """Genesis artifact and the N+1 identities it was built for.

    Read only once handed to the manifest factory.
    """

    artifact_id: str
    archive: bytes = field(repr=False)
    genesis_hash: str
    shred_version: int
    identities: tuple[NodeIdentity, ...]

    @property
    def bootstrap(self) -> NodeIdentity:
        return self.identities[0]

    @property
    def validators(self) -> tuple[NodeIdentity, ...]:
        return self.identities[1:]

    def identity(self, name: str) -> NodeIdentity:
        for ident in self.identities:
            if ident.name == name:
                return ident
        raise KeyError(name)


def check_bundle(spec: ClusterSpec, bundle: GenesisBundle) -> None:
    """Check identity count and stake accounting of *bundle* against *spec*.

    This is bookkeeping over the configured allocations; it catches a wrong
    node count, ordering or duplicate identities. What solana-genesis was
    actually given is compared separately by :func:`check_genesis_inputs`.

    Raises:
        GenesisError: If the bundle does not have exactly one bootstrap first,
            N validators with distinct names and pubkeys, or its stakes do not
            add up to supply minus reserves.
    """
    if len(bundle.identities) != spec.expected_nodes:
        raise GenesisError(
            f"genesis bundle has {len(bundle.identities)} identities, expected {spec.expected_nodes}"
        )
    roles = [ident.role for ident in bundle.identities]
    if roles.count(ROLE_BOOTSTRAP) != 1 or roles[0] != ROLE_BOOTSTRAP:
        raise GenesisError("genesis bundle must contain exactly one bootstrap identity, listed first")
    names = [ident.name for ident in bundle.identities]
    if len(set(names)) != len(names):
        raise GenesisError("genesis bundle contains duplicate node names")
    pubkeys = [ident.pubkey for ident in bundle.identities]
    if len(set(pubkeys)) != len(pubkeys):
        raise GenesisError("genesis bundle contains duplicate identity pubkeys")

    staked = sum(ident.stake_lamports for ident in bundle.identities)
    n = spec.num_validators
    expected = spec.genesis.total_supply(n) - spec.genesis.reserved_lamports(n)
    if staked != expected:
        raise GenesisError(f"staked lamports {staked} do not match genesis supply minus reserves {expected}")


def check_genesis_inputs(bundle: GenesisBundle, genesis_args: list[str], primordial: dict[str, dict]) -> None:
    """Cross-check the bundle's allocations against the solana-genesis inputs.

    Args:
        bundle: Bundle about to be handed out.
        genesis_args: Arguments solana-genesis was invoked with.
        primordial: Parsed primordial accounts file, pubkey to account.

    Raises:
        GenesisError: If the bootstrap stake or balance passed on the command
            line, or a validator's primordial balance, differs from the bundle.
    """
    def _arg(flag: str) -> int:
        try:
            return int(genesis_args[genesis_args.index(flag) + 1])
        except (ValueError, IndexError) as err:
            raise GenesisError(f"solana-genesis was not given {flag}", tool=GENESIS_TOOL) from err

    bootstrap = bundle.bootstrap
    passed = _arg("--bootstrap-validator-stake-lamports"), _arg("--bootstrap-validator-lamports")
    if passed != (bootstrap.stake_lamports, bootstrap.funding_lamports):
        raise GenesisError(
            f"bootstrap stake/balance {bootstrap.stake_lamports}/{bootstrap.funding_lamports} "
            f"differ from the {passed[0]}/{passed[1]} given to solana-genesis"
        )
    for ident in bundle.validators:
        account = primordial.get(ident.pubkey)
        if account is None:
            raise GenesisError(f"{ident.name} identity {ident.pubkey} is missing from {PRIMORDIAL_ACCOUNTS_FILE}")
        if account.get("balance") != ident.stake_lamports + ident.funding_lamports:
            raise GenesisError(
                f"{ident.name} is funded with {account.get('balance')} lamports in {PRIMORDIAL_ACCOUNTS_FILE}, "
                f"expected {ident.stake_lamports + ident.funding_lamports}"
            )


# ============================================================================
# External tool boundary
# ============================================================================

class ToolRunner:
    """Runs the solana command line tools and maps failures to GenesisError."""

    def __init__(self, timeout: int = TOOL_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    def run(self, tool: str, *args: str) -> str:
        """Run *tool* with *args* and return its stdout.

        Raises:
            GenesisError: If the tool is missing, times out, or exits non-zero.
        """
        logger.debug("running %s %s", tool, " ".join(args))
        try:
            command = sh.Command(tool)
        except sh.CommandNotFound as err:
            raise GenesisError(f"'{tool}' not found on PATH", tool=tool) from err
        try:
            return str(command(*args, _timeout=self.timeout))
        except sh.ErrorReturnCode as err:
            stderr = err.stderr.decode(errors="replace").strip()
            raise GenesisError(
                f"{tool} exited with code {err.exit_code}: {stderr[:500]}", tool=tool, stderr=stderr,
            ) from err
        except sh.TimeoutException as err:
            raise GenesisError(f"{tool} timed out after {self.timeout}s", tool=tool) from err


def parse_genesis_output(output: str) -> tuple[str, int]:
    """Extract the genesis hash and shred version printed by solana-genesis.

    Raises:
        GenesisError: If either value is missing.
    """
    hash_match = GENESIS_HASH_PATTERN.search(output)
    shred_match = SHRED_VERSION_PATTERN.search(output)
    if not hash_match or not shred_match:
        raise GenesisError("could not parse genesis hash and shred version from solana-genesis output",
                           tool=GENESIS_TOOL, stderr=output[-500:])
    return hash_match.group(1), int(shred_match.group(1))


# ============================================================================
# Builder
# ============================================================================

class GenesisBuilder:
    """Generates keypairs and the genesis ledger for one ClusterSpec.

    Key generation and genesis encoding stay with solana-keygen and
    solana-genesis; this class only drives them and packages the results.
    """

    def __init__(
        self,
        spec: ClusterSpec,
        runner: ToolRunner | None = None,
        max_workers: int = DEFAULT_KEYGEN_MAX_WORKERS,
    ) -> None:
        self.spec = spec
        self.runner = runner or ToolRunner()
        self.max_workers = max_workers
        self.work_dir = Path(spec.deploy.work_dir)

    @property
    def ledger_dir(self) -> Path:
        return self.work_dir / LEDGER_DIR

    def keypair_paths(self, role: str, index: int = 0) -> dict[str, Path]:
        """Keypair file per account kind for a bootstrap or validator node."""
        if role == ROLE_BOOTSTRAP:
            return {kind: self.work_dir / BOOTSTRAP_KEYPAIR_DIR / f"{kind}.json" for kind in ACCOUNT_KINDS}
        if role == ROLE_VALIDATOR:
            return {kind: self.work_dir / f"validator-{kind}-{index}.json" for kind in ACCOUNT_KINDS}
        raise GenesisError(f"invalid validator type: {role}")

    def _generated_paths(self) -> list[Path]:
        """Artifacts a previous build left in the work directory."""
        paths = [
            self.work_dir / FAUCET_KEYPAIR,
            self.work_dir / BOOTSTRAP_KEYPAIR_DIR,
            self.work_dir / PRIMORDIAL_ACCOUNTS_FILE,
            self.ledger_dir,
        ]
        if self.work_dir.is_dir():
            paths.extend(sorted(
                path for path in self.work_dir.iterdir() if VALIDATOR_KEYPAIR_PATTERN.match(path.name)
            ))
        return paths

    def _prepare_work_dir(self) -> None:
        """Clear artifacts of an earlier build; anything else in the directory is left alone."""
        for path in self._generated_paths():
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
        (self.work_dir / BOOTSTRAP_KEYPAIR_DIR).mkdir(parents=True)

    def _generate_keypair(self, outfile: Path) -> None:
        self.runner.run(KEYGEN_TOOL, "new", "--no-bip39-passphrase", "--silent", "-o", str(outfile))

    def _pubkey(self, keypair: Path) -> str:
        pubkey = self.runner.run(KEYGEN_TOOL, "pubkey", str(keypair)).strip()
        if not PUBKEY_PATTERN.match(pubkey):
            raise GenesisError(f"unparsable pubkey for {keypair.name}: {pubkey!r}", tool=KEYGEN_TOOL)
        return pubkey

    def _generate_identity(self, name: str, role: str, index: int = 0) -> NodeIdentity:
        paths = self.keypair_paths(role, index)
        for path in paths.values():
            self._generate_keypair(path)
        pubkey = self._pubkey(paths["identity"])
        keypairs = {}
        for kind, path in paths.items():
            try:
                keypairs[f"{kind}.json"] = b64(path.read_bytes())
            except OSError as err:
                raise GenesisError(f"keypair {path} was not written: {err}", tool=KEYGEN_TOOL) from err

        params = self.spec.genesis
        if role == ROLE_BOOTSTRAP:
            stake, funding = params.bootstrap_validator_stake_lamports, params.bootstrap_validator_lamports
        else:
            stake, funding = params.validator_stake_lamports, params.validator_lamports - params.validator_stake_lamports
        return NodeIdentity(name=name, role=role, pubkey=pubkey, keypairs=keypairs,
                            stake_lamports=stake, funding_lamports=funding)

    def _generate_validator_identities(self) -> list[NodeIdentity]:
        total = self.spec.num_validators
        if total == 0:
            return []
        identities: dict[int, NodeIdentity] = {}
        with Progress(
            SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
            BarColumn(), TaskProgressColumn(), console=console, transient=True,
        ) as progress:
            task = progress.add_task("[cyan]Generating validator accounts...", total=total)
            with ThreadPoolExecutor(max_workers=min(self.max_workers, total)) as executor:
                futures = {
                    executor.submit(self._generate_identity, validator_name(i), ROLE_VALIDATOR, i): i
                    for i in range(total)
                }
                for future in as_completed(futures):
                    identities[futures[future]] = future.result()
                    progress.advance(task)
        return [identities[i] for i in range(total)]

    def _write_primordial_accounts(self, validators: list[NodeIdentity]) -> Path | None:
        """Fund each validator identity so it can create its stake and vote accounts."""
        if not validators:
            return None
        lamports = self.spec.genesis.validator_lamports
        accounts = {
            ident.pubkey: {"balance": lamports, "owner": SYSTEM_PROGRAM_ID, "data": "", "executable": False}
            for ident in validators
        }
        path = self.work_dir / PRIMORDIAL_ACCOUNTS_FILE
        with open(path, "w") as f:
            yaml.safe_dump(accounts, f, default_flow_style=False, sort_keys=True)
        return path

    def _read_primordial_accounts(self, path: Path | None) -> dict[str, dict]:
        if path is None:
            return {}
        try:
            with open(path) as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as err:
            raise GenesisError(f"cannot read back {path}: {err}") from err

    def genesis_args(self, primordial_accounts: Path | None = None) -> list[str]:
        """Build the solana-genesis argument list from the genesis parameters."""
        params = self.spec.genesis
        bootstrap = self.keypair_paths(ROLE_BOOTSTRAP)
        args = [
            "--bootstrap-validator-stake-lamports", str(params.bootstrap_validator_stake_lamports),
            "--bootstrap-validator-lamports", str(params.bootstrap_validator_lamports),
            "--hashes-per-tick", params.hashes_per_tick,
            "--max-genesis-archive-unpacked-size", str(params.max_genesis_archive_unpacked_size),
        ]
        if params.enable_warmup_epochs:
            args.append("--enable-warmup-epochs")
        args.extend([
            "--faucet-lamports", str(params.faucet_lamports),
            "--faucet-pubkey", str(self.work_dir / FAUCET_KEYPAIR),
            "--cluster-type", params.cluster_type,
            "--ledger", str(self.ledger_dir),
            # identity, vote, stake: order matters to solana-genesis
            "--bootstrap-validator", *(str(bootstrap[kind]) for kind in ACCOUNT_KINDS),
        ])
        if params.slots_per_epoch is not None:
            args.extend(["--slots-per-epoch", str(params.slots_per_epoch)])
        if params.target_lamports_per_signature is not None:
            args.extend(["--target-lamports-per-signature", str(params.target_lamports_per_signature)])
        if primordial_accounts is not None:
            args.extend(["--primordial-accounts-file", str(primordial_accounts)])
        return args

    def _read_archive(self) -> bytes:
        archive_path = self.ledger_dir / GENESIS_ARCHIVE
        try:
            archive = archive_path.read_bytes()
        except OSError as err:
            raise GenesisError(f"genesis archive {archive_path} missing: {err}", tool=GENESIS_TOOL) from err
        if not archive:
            raise GenesisError(f"genesis archive {archive_path} is empty", tool=GENESIS_TOOL)
        if len(archive) > CONFIG_MAP_MAX_BYTES:
            raise GenesisError(
                f"genesis archive is {len(archive)} bytes, larger than the {CONFIG_MAP_MAX_BYTES} byte ConfigMap limit"
            )
        return archive

    def build(self) -> GenesisBundle:
        """Generate all keypairs, run solana-genesis, and package the bundle.

        Returns:
            The checked genesis bundle.

        Raises:
            GenesisError: If any tool fails or the result is inconsistent.
        """
        console.print(Panel.fit("Creating genesis", style="bold blue"))
        self._prepare_work_dir()

        self._generate_keypair(self.work_dir / FAUCET_KEYPAIR)
        bootstrap = self._generate_identity(BOOTSTRAP_NAME, ROLE_BOOTSTRAP)
        console.print(f"[green]  \u2713 bootstrap identity {bootstrap.pubkey}[/green]")

        validators = self._generate_validator_identities()
        if validators:
            console.print(f"[green]  \u2713 {len(validators)} validator identities[/green]")

        primordial = self._write_primordial_accounts(validators)
        args = self.genesis_args(primordial)
        output = self.runner.run(GENESIS_TOOL, *args)
        genesis_hash, shred_version = parse_genesis_output(output)
        archive = self._read_archive()

        bundle = GenesisBundle(
            artifact_id=sha256_hex(archive),
            archive=archive,
            genesis_hash=genesis_hash,
            shred_version=shred_version,
            identities=(bootstrap, *validators),
        )
        check_bundle(self.spec, bundle)
        check_genesis_inputs(bundle, args, self._read_primordial_accounts(primordial))
        console.print(f"[green]\u2705 Genesis created (hash {genesis_hash}, shred version {shred_version})[/green]")
        return bundle
