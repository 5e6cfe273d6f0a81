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


"""Exception taxonomy for cluster deployment."""

from __future__ import annotations


class ClusterDeployError(Exception):
    """Base class for every error raised by solana_k8s_cluster."""


class ConfigError(ClusterDeployError):
    """Invalid user input. Raised before any cluster mutation, never retried."""


class GenesisError(ClusterDeployError):
    """The external genesis tooling failed or produced an unusable artifact.

    Attributes:
        tool: Name of the command that failed, if any.
        stderr: Diagnostic output captured from the tool.
    """

    def __init__(self, message: str, tool: str | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.tool = tool
        self.stderr = stderr


class TransientApiError(ClusterDeployError):
    """A Kubernetes API failure worth retrying (conflict, rate limit, timeout).

    Attributes:
        status: HTTP status code, or None for connection level failures.
        retry_after: Server supplied Retry-After hint in seconds, if any.
    """

    def __init__(self, message: str, status: int | None = None, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after


class KubeApiError(ClusterDeployError):
    """A Kubernetes API failure that retrying will not fix."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NodeDeploymentError(ClusterDeployError):
    """A single node could not be deployed. Recorded, never fatal for validators."""

    def __init__(self, node: str, reason: str) -> None:
        super().__init__(f"{node}: {reason}")
        self.node = node
        self.reason = reason


class BootstrapTimeoutError(NodeDeploymentError):
    """The bootstrap validator never became ready. Fatal for the whole run."""


class VerificationError(ClusterDeployError):
    """Observed topology did not match the expected one. Reported as a warning.

    Attributes:
        expected: Expected gossip node count.
        observed: Last observed gossip node count, or None if unreachable.
    """

    def __init__(self, message: str, expected: int | None = None, observed: int | None = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.observed = observed
