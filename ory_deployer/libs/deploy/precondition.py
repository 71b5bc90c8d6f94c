"""
Precondition Checker

Verifies that the database workload and the DSN secrets written by the
postgres step exist before any service is installed against them.
"""

import logging
from typing import List

from ..core.constants import ErrorMessages
from ..core.exceptions import PreconditionError
from ..core.logging_utils import log_step
from ..core.protocols import ClusterProvider

logger = logging.getLogger(__name__)


class PreconditionChecker:
    """Checks the database workload and the secrets derived from it"""

    def __init__(self, cluster: ClusterProvider, workload: str, workload_namespace: str,
                 secret_names: List[str], secret_namespace: str,
                 workload_kind: str = "statefulset"):
        """
        Initialize precondition checker

        Args:
            cluster: Cluster provider
            workload: Name of the database workload
            workload_namespace: Namespace of the database workload
            secret_names: Secrets that must exist
            secret_namespace: Namespace the secrets must exist in
            workload_kind: statefulset or deployment
        """
        self.cluster = cluster
        self.workload = workload
        self.workload_namespace = workload_namespace
        self.secret_names = list(secret_names)
        self.secret_namespace = secret_namespace
        self.workload_kind = workload_kind

    @property
    def remediation(self) -> str:
        return ErrorMessages.PROVISION_DATABASE_REMEDIATION.format(namespace=self.secret_namespace)

    def check_workload(self) -> None:
        """
        Raises:
            PreconditionError: If the workload is absent or has no running pod
        """
        status = self.cluster.get_workload(self.workload, self.workload_namespace, self.workload_kind)
        if status is None:
            raise PreconditionError(
                ErrorMessages.MISSING_WORKLOAD.format(workload=self.workload, namespace=self.workload_namespace),
                resource=self.workload, namespace=self.workload_namespace, remediation=self.remediation,
            )

        if not status.ready:
            phases = ', '.join(status.pod_phases) or 'no pods'
            raise PreconditionError(
                ErrorMessages.WORKLOAD_NOT_READY.format(
                    workload=self.workload, namespace=self.workload_namespace, phases=phases
                ),
                resource=self.workload, namespace=self.workload_namespace, remediation=self.remediation,
            )

        logger.info(f"Database workload '{self.workload}' is running")

    def check_secrets(self) -> None:
        """
        Raises:
            PreconditionError: On the first secret that does not exist
        """
        for name in self.secret_names:
            if not self.cluster.secret_exists(name, self.secret_namespace):
                raise PreconditionError(
                    ErrorMessages.MISSING_SECRET.format(secret=name, namespace=self.secret_namespace),
                    resource=name, namespace=self.secret_namespace, remediation=self.remediation,
                )
        logger.info(f"Found secrets: {', '.join(self.secret_names)}")

    def run(self) -> None:
        """Run every check; the first failure aborts"""
        log_step(logger, f"Checking database prerequisites in '{self.workload_namespace}'")
        self.check_workload()
        self.check_secrets()
