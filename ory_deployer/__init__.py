"""
Ory Deployer

Deploys the Ory identity and access stack (Kratos, Hydra, Keto and
Oathkeeper) with a shared PostgreSQL onto Kubernetes using Helm, and smoke
tests the identity login flow.
"""

__version__ = "1.0.0"
__author__ = "Ory Deployer Project"

from .libs import OryDeployer, main

__all__ = [
    'OryDeployer',
    'main',
]
