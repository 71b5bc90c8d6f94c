"""
Ory Deployer Library

Core utilities, cluster and Helm clients, deployment steps and the login
flow tester.
"""

__version__ = "1.0.0"
__author__ = "Ory Deployer Project"

# Core libraries
from .core import KubernetesAuth, ConfigManager, DeploymentConfig, LoginConfig
from .core.exceptions import OryDeployerError, ConfigurationError, PreconditionError, HelmError, LoginFlowError

# Cluster clients
from .cluster import HelmClient, KubernetesCluster

# Deployment steps
from .deploy import DeploymentPlan, DeploymentStep, PreconditionChecker, build_deployment_plan

# Login flow
from .login import LoginFlowTester

# Main application
from .main_app import OryDeployer, main

__all__ = [
    # Core
    'KubernetesAuth',
    'ConfigManager',
    'DeploymentConfig',
    'LoginConfig',
    'OryDeployerError',
    'ConfigurationError',
    'PreconditionError',
    'HelmError',
    'LoginFlowError',
    # Cluster
    'HelmClient',
    'KubernetesCluster',
    # Deploy
    'DeploymentPlan',
    'DeploymentStep',
    'PreconditionChecker',
    'build_deployment_plan',
    # Login
    'LoginFlowTester',
    # Main
    'OryDeployer',
    'main',
]
