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


"""NodeSpec construction and Kubernetes manifest rendering."""

from __future__ import annotations

from dataclasses import dataclass, field

import yaml

from solana_k8s_cluster.config import ClusterSpec, ContainerSpec, ResourceSpec
from solana_k8s_cluster.constants import (
    ANNOTATION_IDENTITY,
    BOOTSTRAP_NAME,
    DYNAMIC_PORT_RANGE,
    FAUCET_PORT,
    GENESIS_ARCHIVE,
    GENESIS_CONFIG_MAP,
    GENESIS_MOUNT_PATH,
    GOSSIP_PORT,
    KEYPAIR_MOUNT_PATH,
    LABEL_COMPONENT,
    LABEL_GENESIS,
    LABEL_MANAGED_BY,
    LABEL_NAME,
    LABEL_PART_OF,
    PART_OF_VALUE,
    ROLE_BOOTSTRAP,
    RPC_PORT,
)
from solana_k8s_cluster.genesis import GenesisBundle, NodeIdentity
from solana_k8s_cluster.utils import b64, secret_name


@dataclass(frozen=True)
class NodeSpec:
    """One node to deploy, independent of the Kubernetes objects that realize it.

    Created by :func:`build_node_specs`, consumed once by the orchestrator,
    never mutated. A re-deploy builds new NodeSpecs.
    """

    name: str
    role: str
    identity: str
    container: ContainerSpec
    resources: ResourceSpec
    entrypoint: str
    expected_genesis_hash: str
    expected_shred_version: int
    stake_lamports: int
    funding_lamports: int
    secret_name: str
    depends_on: str | None = None
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def is_bootstrap(self) -> bool:
        return self.role == ROLE_BOOTSTRAP

    @property
    def selector(self) -> dict[str, str]:
        return {LABEL_NAME: self.name, LABEL_PART_OF: PART_OF_VALUE}


def bootstrap_address(namespace: str) -> str:
    """In-cluster DNS name of the bootstrap validator Service."""
    return f"{BOOTSTRAP_NAME}.{namespace}.svc.cluster.local"


def bootstrap_rpc_url(namespace: str) -> str:
    return f"http://{bootstrap_address(namespace)}:{RPC_PORT}"


def _labels(name: str, role: str, bundle: GenesisBundle) -> dict[str, str]:
    return {
        LABEL_NAME: name,
        LABEL_PART_OF: PART_OF_VALUE,
        LABEL_COMPONENT: role,
        LABEL_MANAGED_BY: PART_OF_VALUE,
        LABEL_GENESIS: bundle.artifact_id[:12],
    }


def _node_spec(spec: ClusterSpec, bundle: GenesisBundle, ident: NodeIdentity) -> NodeSpec:
    is_bootstrap = ident.role == ROLE_BOOTSTRAP
    return NodeSpec(
        name=ident.name,
        role=ident.role,
        identity=ident.pubkey,
        container=spec.bootstrap if is_bootstrap else spec.validator,
        resources=spec.bootstrap_resources if is_bootstrap else spec.validator_resources,
        entrypoint=f"{bootstrap_address(spec.namespace)}:{GOSSIP_PORT}",
        expected_genesis_hash=bundle.genesis_hash,
        expected_shred_version=bundle.shred_version,
        stake_lamports=ident.stake_lamports,
        funding_lamports=ident.funding_lamports,
        secret_name=secret_name(ident.name),
        depends_on=None if is_bootstrap else BOOTSTRAP_NAME,
        labels=_labels(ident.name, ident.role, bundle),
    )


def build_node_specs(spec: ClusterSpec, bundle: GenesisBundle) -> list[NodeSpec]:
    """Build the ordered node list: the bootstrap first, then N validators.

    Validators reference the bootstrap Service address before it exists so
    gossip can bootstrap on first contact.

    Args:
        spec: Resolved cluster spec.
        bundle: Genesis bundle built for *spec*.

    Returns:
        Exactly ``spec.num_validators + 1`` NodeSpecs.
    """
    return [_node_spec(spec, bundle, ident) for ident in bundle.identities]


# ============================================================================
# Kubernetes objects
# ============================================================================

def genesis_config_map(spec: ClusterSpec, bundle: GenesisBundle) -> dict:
    """ConfigMap distributing the genesis archive to every pod."""
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {
            "name": GENESIS_CONFIG_MAP,
            "namespace": spec.namespace,
            "labels": {
                LABEL_PART_OF: PART_OF_VALUE,
                LABEL_MANAGED_BY: PART_OF_VALUE,
                LABEL_GENESIS: bundle.artifact_id[:12],
            },
        },
        "data": {
            "genesis-hash": bundle.genesis_hash,
            "shred-version": str(bundle.shred_version),
        },
        "binaryData": {GENESIS_ARCHIVE: b64(bundle.archive)},
    }


def _secret(spec: ClusterSpec, node: NodeSpec, ident: NodeIdentity) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": node.secret_name, "namespace": spec.namespace, "labels": dict(node.labels)},
        "type": "Opaque",
        "data": dict(sorted(ident.keypairs.items())),
    }


def _ports(node: NodeSpec) -> list[tuple[str, int, str]]:
    ports = [
        ("gossip", GOSSIP_PORT, "TCP"),
        ("gossip-udp", GOSSIP_PORT, "UDP"),
        ("rpc", RPC_PORT, "TCP"),
    ]
    if node.is_bootstrap:
        ports.append(("faucet", FAUCET_PORT, "TCP"))
    return ports


def _service(spec: ClusterSpec, node: NodeSpec) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": node.name, "namespace": spec.namespace, "labels": dict(node.labels)},
        "spec": {
            "selector": node.selector,
            "ports": [
                {"name": name, "port": port, "targetPort": port, "protocol": proto}
                for name, port, proto in _ports(node)
            ],
        },
    }


def _env(spec: ClusterSpec, node: NodeSpec) -> list[dict]:
    values = {
        "NODE_NAME": node.name,
        "NODE_ROLE": node.role,
        "IDENTITY_PUBKEY": node.identity,
        "EXPECTED_GENESIS_HASH": node.expected_genesis_hash,
        "EXPECTED_SHRED_VERSION": str(node.expected_shred_version),
        "GOSSIP_PORT": str(GOSSIP_PORT),
        "RPC_PORT": str(RPC_PORT),
        "DYNAMIC_PORT_RANGE": DYNAMIC_PORT_RANGE,
        "GENESIS_DIR": GENESIS_MOUNT_PATH,
        "KEYPAIR_DIR": KEYPAIR_MOUNT_PATH,
        "STAKE_LAMPORTS": str(node.stake_lamports),
        "FUNDING_LAMPORTS": str(node.funding_lamports),
        "TPU_ENABLE_UDP": str(spec.runtime.tpu_enable_udp).lower(),
        "TPU_DISABLE_QUIC": str(spec.runtime.tpu_disable_quic).lower(),
        "GPU_MODE": spec.runtime.gpu_mode,
    }
    if node.is_bootstrap:
        values["FAUCET_PORT"] = str(FAUCET_PORT)
    else:
        values["ENTRYPOINT"] = node.entrypoint
        values["BOOTSTRAP_RPC_URL"] = bootstrap_rpc_url(spec.namespace)
    env = [{"name": key, "value": value} for key, value in values.items()]
    env.append({"name": "MY_POD_IP", "valueFrom": {"fieldRef": {"fieldPath": "status.podIP"}}})
    return env


def _deployment(spec: ClusterSpec, node: NodeSpec) -> dict:
    annotations = {ANNOTATION_IDENTITY: node.identity}
    container = {
        "name": node.container.name,
        "image": node.container.image,
        "imagePullPolicy": "IfNotPresent",
        "env": _env(spec, node),
        "ports": [
            {"name": name, "containerPort": port, "protocol": proto}
            for name, port, proto in _ports(node)
        ],
        "resources": node.resources.to_k8s(),
        "readinessProbe": {
            "httpGet": {"path": "/health", "port": RPC_PORT},
            "initialDelaySeconds": 10,
            "periodSeconds": 5,
            "failureThreshold": 3,
        },
        "volumeMounts": [
            {"name": "genesis", "mountPath": GENESIS_MOUNT_PATH, "readOnly": True},
            {"name": "keypairs", "mountPath": KEYPAIR_MOUNT_PATH, "readOnly": True},
        ],
    }
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": node.name,
            "namespace": spec.namespace,
            "labels": dict(node.labels),
            "annotations": annotations,
        },
        "spec": {
            "replicas": 1,
            "strategy": {"type": "Recreate"},
            "selector": {"matchLabels": node.selector},
            "template": {
                "metadata": {"labels": dict(node.labels), "annotations": dict(annotations)},
                "spec": {
                    "containers": [container],
                    "volumes": [
                        {"name": "genesis", "configMap": {"name": GENESIS_CONFIG_MAP}},
                        {"name": "keypairs", "secret": {"secretName": node.secret_name, "defaultMode": 0o400}},
                    ],
                },
            },
        },
    }


def render_node(spec: ClusterSpec, bundle: GenesisBundle, node: NodeSpec) -> list[dict]:
    """Kubernetes objects for one node, in submission order: Secret, Service, Deployment."""
    ident = bundle.identity(node.name)
    return [_secret(spec, node, ident), _service(spec, node), _deployment(spec, node)]


def render_manifests(spec: ClusterSpec, bundle: GenesisBundle, nodes: list[NodeSpec] | None = None) -> str:
    """Render every object of the cluster as one multi-document YAML string.

    The output is byte-identical for identical inputs.
    """
    if nodes is None:
        nodes = build_node_specs(spec, bundle)
    objects = [genesis_config_map(spec, bundle)]
    for node in nodes:
        objects.extend(render_node(spec, bundle, node))
    return "---\n".join(yaml.safe_dump(obj, default_flow_style=False, sort_keys=True) for obj in objects)
