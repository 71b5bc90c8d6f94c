"""
Core Libraries

Shared functionality and utilities for the Ory deployer.
"""

from .auth import KubernetesAuth
from .config import ConfigManager, DeploymentConfig, LoginConfig
from .exceptions import (
    OryDeployerError,
    ConfigurationError,
    AuthenticationError,
    PreconditionError,
    MissingFileError,
    ClusterError,
    HelmError,
    LoginFlowError,
)
from .logging_utils import setup_logging, log_step
from .utils import generate_secret, disable_ssl_warnings

__all__ = [
    'KubernetesAuth',
    'ConfigManager',
    'DeploymentConfig',
    'LoginConfig',
    'OryDeployerError',
    'ConfigurationError',
    'AuthenticationError',
    'PreconditionError',
    'MissingFileError',
    'ClusterError',
    'HelmError',
    'LoginFlowError',
    'setup_logging',
    'log_step',
    'generate_secret',
    'disable_ssl_warnings',
]
