"""
Data Models Module.

Typed data structures shared by the cluster clients and the deployment steps.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .constants import HelmConstants, KubernetesConstants


@dataclass(frozen=True)
class SecretRef:
    """A named Kubernetes secret"""
    name: str
    namespace: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class ReleaseSpec:
    """
    One ``helm upgrade --install`` invocation.

    Override key paths use Helm's dot/bracket notation, e.g.
    ``kratos.config.secrets.cookie[0]``.
    """
    name: str
    chart: str
    namespace: str
    values_files: List[str] = field(default_factory=list)
    set_values: List[Tuple[str, str]] = field(default_factory=list)
    set_string_values: List[Tuple[str, str]] = field(default_factory=list)
    wait: bool = True
    timeout: str = HelmConstants.DEFAULT_TIMEOUT
    skip_crds: bool = False

    def secret_values(self) -> List[str]:
        """All override values, used to mask helm commands in logs"""
        return [value for _, value in self.set_values + self.set_string_values]


@dataclass
class WorkloadStatus:
    """Existence and pod phases of a workload"""
    name: str
    namespace: str
    kind: str
    pod_phases: List[str] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return KubernetesConstants.POD_PHASE_RUNNING in self.pod_phases


@dataclass
class OptionalSecret:
    """A secret merged into a release when present, warned about when absent"""
    name: str
    key: str
    override: str
    label: str
    consequence: str
    example_value: str


@dataclass
class ServiceDefinition:
    """Parameters of one Ory service installer"""
    key: str
    display_name: str
    role: str
    release: str
    chart: str
    values_file: str
    database: Optional[str] = None
    dsn_override: Optional[str] = None
    generated_secrets: List[str] = field(default_factory=list)
    optional_secret: Optional[OptionalSecret] = None
    host_override: Optional[str] = None
    host_template: str = "{host}"
    public_host: Optional[str] = None
    skip_crds: bool = False
