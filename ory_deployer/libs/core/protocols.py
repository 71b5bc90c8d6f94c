"""
Protocols Module

Capability interfaces the deployment steps depend on. The real implementations
live in ``libs.cluster``; tests substitute in-memory fakes.
"""

from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from .data_models import ReleaseSpec, WorkloadStatus


class ClusterProvider(Protocol):
    """Read/create/apply operations against the Kubernetes API"""

    def namespace_exists(self, name: str) -> bool:
        ...

    def create_namespace(self, name: str) -> None:
        ...

    def get_workload(self, name: str, namespace: str, kind: str) -> Optional[WorkloadStatus]:
        """Return the workload and its pod phases, or None if it does not exist"""
        ...

    def secret_exists(self, name: str, namespace: str) -> bool:
        ...

    def read_secret(self, name: str, namespace: str, key: str) -> str:
        """Return the decoded value stored under key"""
        ...

    def apply_secret(self, name: str, namespace: str, data: Dict[str, str]) -> None:
        """Create the opaque secret or replace its data"""
        ...

    def crd_exists(self, name: str) -> bool:
        ...

    def apply_manifest_url(self, url: str) -> None:
        ...

    def apply_manifests(self, path: Union[str, Path], namespace: Optional[str] = None) -> None:
        """Apply every manifest under a file or directory as one batch"""
        ...


class PackageManager(Protocol):
    """Helm release operations"""

    def add_repository(self, name: str, url: str) -> None:
        ...

    def update_repositories(self) -> None:
        ...

    def install_or_upgrade(self, release: ReleaseSpec) -> None:
        ...
