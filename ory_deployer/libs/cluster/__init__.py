"""
Cluster Libraries

Kubernetes and Helm implementations of the deployer's capability interfaces.
"""

from .helm_client import HelmClient, build_install_command
from .kubernetes_client import KubernetesCluster

__all__ = [
    'HelmClient',
    'KubernetesCluster',
    'build_install_command',
]
