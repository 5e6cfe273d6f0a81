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


"""Configuration classes, ClusterSpec resolution and display."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from solana_k8s_cluster import console
from solana_k8s_cluster.backoff import BackoffPolicy
from solana_k8s_cluster.constants import (
    DEFAULT_API_BASE_DELAY_SECONDS,
    DEFAULT_API_MAX_ATTEMPTS,
    DEFAULT_API_MAX_DELAY_SECONDS,
    DEFAULT_BOOTSTRAP_CONTAINER,
    DEFAULT_BOOTSTRAP_NODE_LAMPORTS,
    DEFAULT_BOOTSTRAP_NODE_STAKE_LAMPORTS,
    DEFAULT_BOOTSTRAP_READY_TIMEOUT_SECONDS,
    DEFAULT_CLUSTER_TYPE,
    DEFAULT_CPU_REQUEST,
    DEFAULT_FAUCET_LAMPORTS,
    DEFAULT_HASHES_PER_TICK,
    DEFAULT_INTERNAL_NODE_SOL,
    DEFAULT_INTERNAL_NODE_STAKE_SOL,
    DEFAULT_MAX_GENESIS_ARCHIVE_UNPACKED_SIZE,
    DEFAULT_MAX_WORKERS,
    DEFAULT_MEMORY_REQUEST,
    DEFAULT_NAMESPACE,
    DEFAULT_READY_BASE_DELAY_SECONDS,
    DEFAULT_READY_MAX_DELAY_SECONDS,
    DEFAULT_VALIDATOR_CONTAINER,
    DEFAULT_VALIDATOR_READY_TIMEOUT_SECONDS,
    DEFAULT_VERIFY_MAX_DELAY_SECONDS,
    DEFAULT_VERIFY_TIMEOUT_SECONDS,
    DEFAULT_WORK_DIR,
    LAMPORTS_PER_SOL,
)
from solana_k8s_cluster.errors import ConfigError

# RFC 1123 DNS label, the rule Kubernetes applies to namespace names.
NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
NAMESPACE_MAX_LENGTH = 63

_IMAGE_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
IMAGE_PATTERN = re.compile(
    r"^(?:(?P<registry>localhost(?::\d+)?|[a-zA-Z0-9-]+(?:\.[a-zA-Z0-9-]+)+(?::\d+)?"
    r"|[a-zA-Z0-9-]+:\d+)/)?"
    rf"(?P<path>{_IMAGE_COMPONENT}(?:/{_IMAGE_COMPONENT})*)"
    r"(?::(?P<tag>[\w][\w.-]{0,127}))?"
    r"(?:@(?P<digest>sha256:[a-f0-9]{64}))?$"
)
QUANTITY_PATTERN = r"^\d+(\.\d+)?(m|k|Ki|M|Mi|G|Gi|T|Ti)?$"


def validate_namespace(value: str) -> str:
    """Check *value* against the Kubernetes namespace naming rules.

    Raises:
        ValueError: If the name is empty, too long or not an RFC 1123 label.
    """
    if not value:
        raise ValueError("namespace must not be empty")
    if len(value) > NAMESPACE_MAX_LENGTH:
        raise ValueError(f"namespace '{value}' is longer than {NAMESPACE_MAX_LENGTH} characters")
    if not NAMESPACE_PATTERN.match(value):
        raise ValueError(
            f"namespace '{value}' must consist of lower case alphanumerics or '-', "
            "and start and end with an alphanumeric"
        )
    return value


def validate_image(value: str) -> str:
    """Check that *value* is a well formed container image reference.

    Raises:
        ValueError: If the reference does not parse.
    """
    if not value or not IMAGE_PATTERN.match(value):
        raise ValueError(f"malformed image reference '{value}'")
    return value


# ============================================================================
# Configuration classes
# ============================================================================

class ClusterConfig(BaseSettings):
    """Cluster topology and container configuration, auto-loaded from SOLANA_K8S_* env vars.

    Attributes:
        namespace: Kubernetes namespace to deploy into.
        num_validators: Number of regular validators besides the bootstrap.
        bootstrap_container: Container name of the bootstrap validator.
        bootstrap_image: Image reference of the bootstrap validator.
        validator_container: Container name of regular validators.
        validator_image: Image reference of regular validators.
        bootstrap_cpu: CPU request of the bootstrap validator.
        bootstrap_memory: Memory request of the bootstrap validator.
        validator_cpu: CPU request per validator.
        validator_memory: Memory request per validator.
        cpu_limit: Optional CPU limit applied to every node.
        memory_limit: Optional memory limit applied to every node.
        tpu_enable_udp: Enable UDP for TPU transactions.
        tpu_disable_quic: Disable QUIC for TPU packet forwarding.
        gpu_mode: GPU mode passed through to the validator containers.
    """

    model_config = SettingsConfigDict(env_prefix="SOLANA_K8S_", extra="ignore")

    namespace: str = DEFAULT_NAMESPACE
    num_validators: int = Field(default=1, ge=0)
    bootstrap_container: str = DEFAULT_BOOTSTRAP_CONTAINER
    bootstrap_image: str | None = None
    validator_container: str = DEFAULT_VALIDATOR_CONTAINER
    validator_image: str | None = None
    bootstrap_cpu: str = Field(default=DEFAULT_CPU_REQUEST, pattern=QUANTITY_PATTERN)
    bootstrap_memory: str = Field(default=DEFAULT_MEMORY_REQUEST, pattern=QUANTITY_PATTERN)
    validator_cpu: str = Field(default=DEFAULT_CPU_REQUEST, pattern=QUANTITY_PATTERN)
    validator_memory: str = Field(default=DEFAULT_MEMORY_REQUEST, pattern=QUANTITY_PATTERN)
    cpu_limit: str | None = Field(default=None, pattern=QUANTITY_PATTERN)
    memory_limit: str | None = Field(default=None, pattern=QUANTITY_PATTERN)
    tpu_enable_udp: bool = False
    tpu_disable_quic: bool = False
    gpu_mode: Literal["on", "off", "auto", "cuda"] = "auto"

    @field_validator("namespace")
    @classmethod
    def _check_namespace(cls, value: str) -> str:
        return validate_namespace(value)

    @field_validator("bootstrap_container", "validator_container")
    @classmethod
    def _check_container(cls, value: str) -> str:
        if not NAMESPACE_PATTERN.match(value or ""):
            raise ValueError(f"container name '{value}' is not a valid DNS label")
        return value

    @field_validator("bootstrap_image", "validator_image")
    @classmethod
    def _check_image(cls, value: str | None) -> str | None:
        return value if value is None else validate_image(value)


class GenesisConfig(BaseSettings):
    """Genesis parameters passed to solana-genesis, auto-loaded from SOLANA_K8S_* env vars.

    Attributes:
        hashes_per_tick: ``auto``, ``sleep`` or a hash count per tick.
        slots_per_epoch: Override for the number of slots in an epoch.
        target_lamports_per_signature: Target signature fee.
        faucet_lamports: Lamports minted to the faucet.
        enable_warmup_epochs: Whether warmup epochs are enabled.
        max_genesis_archive_unpacked_size: Limit on the unpacked genesis archive.
        cluster_type: Feature set selector for the cluster.
        bootstrap_validator_lamports: Balance of the bootstrap identity.
        bootstrap_validator_stake_lamports: Stake delegated to the bootstrap.
        internal_node_sol: Funding of each validator identity, in SOL.
        internal_node_stake_sol: Stake of each validator, in SOL.
        work_dir: Directory the genesis material is written to.
    """

    model_config = SettingsConfigDict(env_prefix="SOLANA_K8S_", extra="ignore")

    hashes_per_tick: str = Field(default=DEFAULT_HASHES_PER_TICK, pattern=r"^(auto|sleep|\d+)$")
    slots_per_epoch: int | None = Field(default=None, ge=1)
    target_lamports_per_signature: int | None = Field(default=None, ge=0)
    faucet_lamports: int = Field(default=DEFAULT_FAUCET_LAMPORTS, ge=0)
    enable_warmup_epochs: bool = True
    max_genesis_archive_unpacked_size: int = Field(default=DEFAULT_MAX_GENESIS_ARCHIVE_UNPACKED_SIZE, ge=1)
    cluster_type: Literal["development", "devnet", "testnet", "mainnet-beta"] = DEFAULT_CLUSTER_TYPE
    bootstrap_validator_lamports: int = Field(default=DEFAULT_BOOTSTRAP_NODE_LAMPORTS, ge=0)
    bootstrap_validator_stake_lamports: int = Field(default=DEFAULT_BOOTSTRAP_NODE_STAKE_LAMPORTS, gt=0)
    internal_node_sol: float = Field(default=DEFAULT_INTERNAL_NODE_SOL, ge=0)
    internal_node_stake_sol: float = Field(default=DEFAULT_INTERNAL_NODE_STAKE_SOL, ge=0)
    work_dir: Path = DEFAULT_WORK_DIR


class DeployConfig(BaseSettings):
    """Orchestration tuning, auto-loaded from SOLANA_K8S_* env vars.

    Attributes:
        max_workers: Size of the validator submission worker pool.
        create_namespace: Create the namespace when it does not exist.
        api_max_attempts: Attempts per Kubernetes API call.
        api_base_delay: First API retry delay in seconds.
        api_max_delay: Cap on a single API retry delay.
        bootstrap_ready_timeout: Seconds to wait for the bootstrap to become ready.
        validator_ready_timeout: Seconds to wait for each validator.
        ready_base_delay: First readiness poll delay.
        ready_max_delay: Cap on a single readiness poll delay.
        verify_timeout: Seconds the convergence check keeps polling.
        rpc_url: Bootstrap RPC endpoint override used for verification.
        skip_verify: Skip the convergence check entirely.
    """

    model_config = SettingsConfigDict(env_prefix="SOLANA_K8S_", extra="ignore")

    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1, le=64)
    create_namespace: bool = False
    api_max_attempts: int = Field(default=DEFAULT_API_MAX_ATTEMPTS, ge=1, le=20)
    api_base_delay: float = Field(default=DEFAULT_API_BASE_DELAY_SECONDS, ge=0)
    api_max_delay: float = Field(default=DEFAULT_API_MAX_DELAY_SECONDS, ge=0)
    bootstrap_ready_timeout: float = Field(default=DEFAULT_BOOTSTRAP_READY_TIMEOUT_SECONDS, gt=0)
    validator_ready_timeout: float = Field(default=DEFAULT_VALIDATOR_READY_TIMEOUT_SECONDS, gt=0)
    ready_base_delay: float = Field(default=DEFAULT_READY_BASE_DELAY_SECONDS, ge=0)
    ready_max_delay: float = Field(default=DEFAULT_READY_MAX_DELAY_SECONDS, ge=0)
    verify_timeout: float = Field(default=DEFAULT_VERIFY_TIMEOUT_SECONDS, gt=0)
    rpc_url: str | None = Field(default=None, pattern=r"^https?://")
    skip_verify: bool = False


# ============================================================================
# Resolved, immutable cluster spec
# ============================================================================

@dataclass(frozen=True)
class ContainerSpec:
    """Container name and image of one node role."""

    name: str
    image: str | None


@dataclass(frozen=True)
class ResourceSpec:
    """Per-node resource requests and optional limits."""

    cpu: str
    memory: str
    cpu_limit: str | None = None
    memory_limit: str | None = None

    def to_k8s(self) -> dict:
        """Render as a container ``resources`` block."""
        resources: dict[str, dict[str, str]] = {"requests": {"cpu": self.cpu, "memory": self.memory}}
        limits = {k: v for k, v in (("cpu", self.cpu_limit), ("memory", self.memory_limit)) if v}
        if limits:
            resources["limits"] = limits
        return resources


@dataclass(frozen=True)
class GenesisParameters:
    """Genesis parameters with lamport accounting helpers."""

    hashes_per_tick: str = DEFAULT_HASHES_PER_TICK
    slots_per_epoch: int | None = None
    target_lamports_per_signature: int | None = None
    faucet_lamports: int = DEFAULT_FAUCET_LAMPORTS
    enable_warmup_epochs: bool = True
    max_genesis_archive_unpacked_size: int = DEFAULT_MAX_GENESIS_ARCHIVE_UNPACKED_SIZE
    cluster_type: str = DEFAULT_CLUSTER_TYPE
    bootstrap_validator_lamports: int = DEFAULT_BOOTSTRAP_NODE_LAMPORTS
    bootstrap_validator_stake_lamports: int = DEFAULT_BOOTSTRAP_NODE_STAKE_LAMPORTS
    internal_node_sol: float = DEFAULT_INTERNAL_NODE_SOL
    internal_node_stake_sol: float = DEFAULT_INTERNAL_NODE_STAKE_SOL

    @property
    def validator_lamports(self) -> int:
        return sol_to_lamports(self.internal_node_sol)

    @property
    def validator_stake_lamports(self) -> int:
        return sol_to_lamports(self.internal_node_stake_sol)

    def total_supply(self, num_validators: int) -> int:
        """Lamports minted in genesis for a cluster of *num_validators*."""
        return (
            self.faucet_lamports
            + self.bootstrap_validator_lamports
            + self.bootstrap_validator_stake_lamports
            + num_validators * self.validator_lamports
        )

    def reserved_lamports(self, num_validators: int) -> int:
        """Lamports of the supply that are not staked (faucet and spendable balances)."""
        return (
            self.faucet_lamports
            + self.bootstrap_validator_lamports
            + num_validators * (self.validator_lamports - self.validator_stake_lamports)
        )

    def total_stake(self, num_validators: int) -> int:
        return self.total_supply(num_validators) - self.reserved_lamports(num_validators)


@dataclass(frozen=True)
class RuntimeOptions:
    """Validator runtime flags passed through to the containers."""

    tpu_enable_udp: bool = False
    tpu_disable_quic: bool = False
    gpu_mode: str = "auto"


@dataclass(frozen=True)
class DeployOptions:
    """Orchestration knobs. Policies are injectable so tests can avoid real sleeps."""

    max_workers: int = DEFAULT_MAX_WORKERS
    create_namespace: bool = False
    api_retry: BackoffPolicy = field(default_factory=BackoffPolicy)
    bootstrap_ready: BackoffPolicy = field(default_factory=BackoffPolicy)
    validator_ready: BackoffPolicy = field(default_factory=BackoffPolicy)
    verify: BackoffPolicy = field(default_factory=BackoffPolicy)
    rpc_url: str | None = None
    skip_verify: bool = False
    work_dir: Path = DEFAULT_WORK_DIR


@dataclass(frozen=True)
class ClusterSpec:
    """Immutable description of the cluster to deploy, created once per run."""

    namespace: str
    num_validators: int
    bootstrap: ContainerSpec
    validator: ContainerSpec
    bootstrap_resources: ResourceSpec
    validator_resources: ResourceSpec
    genesis: GenesisParameters = field(default_factory=GenesisParameters)
    runtime: RuntimeOptions = field(default_factory=RuntimeOptions)
    deploy: DeployOptions = field(default_factory=DeployOptions)

    @property
    def expected_nodes(self) -> int:
        return self.num_validators + 1


def sol_to_lamports(sol: float) -> int:
    return int(round(sol * LAMPORTS_PER_SOL))


# ============================================================================
# Config resolution
# ============================================================================

def _format_validation_error(err: ValidationError) -> str:
    parts = []
    for item in err.errors():
        loc = ".".join(str(p) for p in item["loc"]) or "value"
        parts.append(f"{loc}: {item['msg']}")
    return "; ".join(parts)


def _split_overrides(overrides: dict[str, Any]) -> tuple[dict, dict, dict]:
    buckets: tuple[dict, dict, dict] = ({}, {}, {})
    classes = (ClusterConfig, GenesisConfig, DeployConfig)
    for key, value in overrides.items():
        if value is None:
            continue
        for bucket, cls in zip(buckets, classes):
            if key in cls.model_fields:
                bucket[key] = value
                break
        else:
            raise ConfigError(f"unknown configuration option '{key}'")
    return buckets


def _deploy_options(deploy_cfg: DeployConfig, work_dir: Path) -> DeployOptions:
    api_retry = BackoffPolicy(
        max_attempts=deploy_cfg.api_max_attempts,
        base_delay=deploy_cfg.api_base_delay,
        max_delay=deploy_cfg.api_max_delay,
    )
    # Readiness polls are bounded by their timeout; the attempt cap only
    # guards against a zero delay spinning forever.
    def _ready(timeout: float) -> BackoffPolicy:
        return BackoffPolicy(
            max_attempts=max(int(timeout / max(deploy_cfg.ready_base_delay, 0.1)) + 1, 2),
            base_delay=deploy_cfg.ready_base_delay,
            max_delay=deploy_cfg.ready_max_delay,
            timeout=timeout,
        )

    return DeployOptions(
        max_workers=deploy_cfg.max_workers,
        create_namespace=deploy_cfg.create_namespace,
        api_retry=api_retry,
        bootstrap_ready=_ready(deploy_cfg.bootstrap_ready_timeout),
        validator_ready=_ready(deploy_cfg.validator_ready_timeout),
        verify=BackoffPolicy(
            max_attempts=max(int(deploy_cfg.verify_timeout / max(deploy_cfg.ready_base_delay, 0.1)) + 1, 2),
            base_delay=deploy_cfg.ready_base_delay,
            max_delay=DEFAULT_VERIFY_MAX_DELAY_SECONDS,
            timeout=deploy_cfg.verify_timeout,
        ),
        rpc_url=deploy_cfg.rpc_url,
        skip_verify=deploy_cfg.skip_verify,
        work_dir=work_dir,
    )


def resolve_config(*, require_images: bool = True, **overrides: Any) -> ClusterSpec:
    """Merge overrides, environment variables, and defaults into a ClusterSpec.

    Resolution priority: explicit overrides > SOLANA_K8S_* environment
    variables > defaults. ``None`` overrides are ignored so CLI options that
    were not given fall through to the environment.

    Args:
        require_images: Whether both image references must be set. Commands
            that never create pods (genesis, verify) pass False.
        **overrides: Field values for ClusterConfig, GenesisConfig or DeployConfig.

    Returns:
        The resolved, immutable ClusterSpec.

    Raises:
        ConfigError: If any value is invalid or an option is unknown.
    """
    cluster_kw, genesis_kw, deploy_kw = _split_overrides(overrides)
    try:
        cluster_cfg = ClusterConfig(**cluster_kw)
        genesis_cfg = GenesisConfig(**genesis_kw)
        deploy_cfg = DeployConfig(**deploy_kw)
    except ValidationError as err:
        raise ConfigError(_format_validation_error(err)) from err

    if require_images:
        if cluster_cfg.bootstrap_image is None:
            raise ConfigError("bootstrap image is required (--bootstrap-image)")
        if cluster_cfg.validator_image is None:
            raise ConfigError("validator image is required (--validator-image)")
    if genesis_cfg.internal_node_stake_sol > genesis_cfg.internal_node_sol:
        raise ConfigError(
            f"internal node stake ({genesis_cfg.internal_node_stake_sol} SOL) exceeds "
            f"internal node funding ({genesis_cfg.internal_node_sol} SOL)"
        )

    genesis = GenesisParameters(
        hashes_per_tick=genesis_cfg.hashes_per_tick,
        slots_per_epoch=genesis_cfg.slots_per_epoch,
        target_lamports_per_signature=genesis_cfg.target_lamports_per_signature,
        faucet_lamports=genesis_cfg.faucet_lamports,
        enable_warmup_epochs=genesis_cfg.enable_warmup_epochs,
        max_genesis_archive_unpacked_size=genesis_cfg.max_genesis_archive_unpacked_size,
        cluster_type=genesis_cfg.cluster_type,
        bootstrap_validator_lamports=genesis_cfg.bootstrap_validator_lamports,
        bootstrap_validator_stake_lamports=genesis_cfg.bootstrap_validator_stake_lamports,
        internal_node_sol=genesis_cfg.internal_node_sol,
        internal_node_stake_sol=genesis_cfg.internal_node_stake_sol,
    )

    return ClusterSpec(
        namespace=cluster_cfg.namespace,
        num_validators=cluster_cfg.num_validators,
        bootstrap=ContainerSpec(cluster_cfg.bootstrap_container, cluster_cfg.bootstrap_image),
        validator=ContainerSpec(cluster_cfg.validator_container, cluster_cfg.validator_image),
        bootstrap_resources=ResourceSpec(
            cluster_cfg.bootstrap_cpu, cluster_cfg.bootstrap_memory,
            cluster_cfg.cpu_limit, cluster_cfg.memory_limit,
        ),
        validator_resources=ResourceSpec(
            cluster_cfg.validator_cpu, cluster_cfg.validator_memory,
            cluster_cfg.cpu_limit, cluster_cfg.memory_limit,
        ),
        genesis=genesis,
        runtime=RuntimeOptions(
            tpu_enable_udp=cluster_cfg.tpu_enable_udp,
            tpu_disable_quic=cluster_cfg.tpu_disable_quic,
            gpu_mode=cluster_cfg.gpu_mode,
        ),
        deploy=_deploy_options(deploy_cfg, genesis_cfg.work_dir),
    )


# ============================================================================
# Display
# ============================================================================

def display_config(spec: ClusterSpec) -> None:
    """Print the resolved configuration.

    Args:
        spec: Resolved cluster spec.
    """
    console.print(Panel.fit("Configuration", style="bold blue"))

    console.print("[yellow]Cluster:[/yellow]")
    console.print(f"  namespace        : {spec.namespace}")
    console.print(f"  validators       : {spec.num_validators} (+1 bootstrap)")
    console.print(f"  bootstrap_image  : {spec.bootstrap.image}")
    console.print(f"  validator_image  : {spec.validator.image}")
    console.print(f"  validator_cpu    : {spec.validator_resources.cpu}")
    console.print(f"  validator_memory : {spec.validator_resources.memory}")

    console.print("[yellow]Genesis:[/yellow]")
    console.print(f"  cluster_type     : {spec.genesis.cluster_type}")
    console.print(f"  hashes_per_tick  : {spec.genesis.hashes_per_tick}")
    console.print(f"  faucet_lamports  : {spec.genesis.faucet_lamports}")
    console.print(f"  bootstrap_stake  : {spec.genesis.bootstrap_validator_stake_lamports}")
    console.print(f"  validator_stake  : {spec.genesis.validator_stake_lamports}")
    console.print(f"  work_dir         : {spec.deploy.work_dir}")

    console.print("[yellow]Deployment:[/yellow]")
    console.print(f"  max_workers      : {spec.deploy.max_workers}")
    console.print(f"  create_namespace : {spec.deploy.create_namespace}")
    console.print(f"  rpc_url          : {spec.deploy.rpc_url or '(bootstrap service)'}")
    console.print(f"  verify           : {'skipped' if spec.deploy.skip_verify else 'enabled'}")
