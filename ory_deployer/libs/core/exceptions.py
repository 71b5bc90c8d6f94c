"""
Exceptions Module

Error taxonomy for the Ory deployer. Every error raised by the tool derives
from OryDeployerError so the CLI can map it to exit code 1.
"""

from typing import Optional


class OryDeployerError(Exception):
    """Base exception for all deployer errors"""


class ConfigurationError(OryDeployerError):
    """Invalid configuration file, environment or command-line input"""


class AuthenticationError(OryDeployerError):
    """Kubernetes client could not be configured"""


class PreconditionError(OryDeployerError):
    """A resource required before a step runs is missing"""

    def __init__(self, message: str, resource: Optional[str] = None,
                 namespace: Optional[str] = None, remediation: Optional[str] = None):
        """
        Initialize precondition error

        Args:
            message: Human-readable description of the failed check
            resource: Name of the missing resource
            namespace: Namespace the resource was expected in
            remediation: Command or action that fixes the problem
        """
        self.message = message
        self.resource = resource
        self.namespace = namespace
        self.remediation = remediation
        super().__init__(message if not remediation else f"{message}. {remediation}")


class MissingFileError(PreconditionError):
    """A required file or directory does not exist on disk"""

    def __init__(self, message: str, path: str):
        self.path = path
        super().__init__(message, resource=path)


class ClusterError(OryDeployerError):
    """Kubernetes API call failed"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class HelmError(OryDeployerError):
    """Helm command failed"""

    def __init__(self, message: str, command: Optional[list] = None,
                 returncode: Optional[int] = None, stderr: str = ""):
        self.command = command or []
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class LoginFlowError(OryDeployerError):
    """Kratos login flow could not be completed"""
