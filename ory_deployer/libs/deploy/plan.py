"""
Deployment Plan

An ordered list of named steps. Each step declares the secrets it requires,
the secrets it produces and the files it reads, so ordering dependencies
(database before the services using it) are checked rather than implied by
call order.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core.config import DeploymentConfig
from ..core.constants import ErrorMessages, HelmConstants, OryConstants
from ..core.data_models import SecretRef
from ..core.exceptions import ClusterError, ConfigurationError, MissingFileError, PreconditionError
from ..core.logging_utils import log_step
from ..core.protocols import ClusterProvider, PackageManager
from .namespace import ensure_namespace
from .postgres import PostgresProvisioner
from .precondition import PreconditionChecker
from .services import GatewayInstaller, create_installer, default_service_definitions

logger = logging.getLogger(__name__)


@dataclass
class DeploymentStep:
    """One named unit of the deployment"""
    name: str
    description: str
    action: Callable[[], object]
    requires: List[SecretRef] = field(default_factory=list)
    produces: List[SecretRef] = field(default_factory=list)
    required_files: List[Path] = field(default_factory=list)


class DeploymentPlan:
    """Runs steps strictly in order; the first failure aborts the run"""

    def __init__(self, cluster: ClusterProvider, steps: Optional[List[DeploymentStep]] = None,
                 remediation: Optional[str] = None):
        """
        Initialize deployment plan

        Args:
            cluster: Cluster provider used to verify required and produced secrets
            steps: Initial steps, in execution order
            remediation: Hint attached to missing-secret errors
        """
        self.cluster = cluster
        self.steps: List[DeploymentStep] = []
        self.remediation = remediation
        for step in steps or []:
            self.add_step(step)

    def add_step(self, step: DeploymentStep) -> None:
        if any(existing.name == step.name for existing in self.steps):
            raise ConfigurationError(f"Duplicate deployment step: {step.name}")
        self.steps.append(step)

    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]

    def get_step(self, name: str) -> DeploymentStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise ConfigurationError(
            f"Unknown step '{name}'. Available steps: {', '.join(self.step_names())}"
        )

    def validate(self) -> None:
        """
        Reject plans where a step requires a secret only a later step produces

        Secrets no step produces are external and are checked in the cluster
        when the step runs.

        Raises:
            ConfigurationError: On an ordering violation
        """
        producers: Dict[SecretRef, int] = {}
        for index, step in enumerate(self.steps):
            for secret in step.produces:
                producers.setdefault(secret, index)

        for index, step in enumerate(self.steps):
            for secret in step.requires:
                producer = producers.get(secret)
                if producer is not None and producer > index:
                    raise ConfigurationError(
                        f"Step '{step.name}' requires secret {secret} which is produced by "
                        f"later step '{self.steps[producer].name}'"
                    )

    def check_files(self) -> None:
        """
        Raises:
            MissingFileError: On the first required file that does not exist
        """
        for step in self.steps:
            for path in step.required_files:
                if not Path(path).is_file():
                    raise MissingFileError(
                        f"File required by step '{step.name}' not found: {path}", str(path)
                    )

    def _check_secrets(self, step: DeploymentStep, secrets: List[SecretRef], produced: bool) -> None:
        for secret in secrets:
            if self.cluster.secret_exists(secret.name, secret.namespace):
                continue
            if produced:
                raise ClusterError(f"Step '{step.name}' did not produce secret {secret}")
            raise PreconditionError(
                ErrorMessages.MISSING_SECRET.format(secret=secret.name, namespace=secret.namespace),
                resource=secret.name, namespace=secret.namespace, remediation=self.remediation,
            )

    def run_step(self, step: DeploymentStep) -> None:
        self._check_secrets(step, step.requires, produced=False)
        logger.debug(f"Running step '{step.name}': {step.description}")
        step.action()
        self._check_secrets(step, step.produces, produced=True)

    def run(self) -> None:
        """
        Validate the plan, check every required file, then run each step

        Raises:
            OryDeployerError: From the first failing check or step
        """
        self.validate()
        self.check_files()
        for step in self.steps:
            self.run_step(step)

    def describe(self) -> List[str]:
        """Human-readable lines describing the plan"""
        lines = []
        for index, step in enumerate(self.steps, 1):
            lines.append(f"{index}. {step.name}: {step.description}")
            if step.requires:
                lines.append(f"     requires: {', '.join(str(s) for s in step.requires)}")
            if step.produces:
                lines.append(f"     produces: {', '.join(str(s) for s in step.produces)}")
            if step.required_files:
                lines.append(f"     files:    {', '.join(str(p) for p in step.required_files)}")
        return lines


def register_repositories(helm: PackageManager) -> None:
    """Register the chart repositories the releases are installed from"""
    log_step(logger, "Registering Helm chart repositories")
    for name, url in HelmConstants.REPOSITORIES.items():
        helm.add_repository(name, url)
        logger.info(f"Repository '{name}' -> {url}")
    helm.update_repositories()


def build_deployment_plan(config: DeploymentConfig, cluster: ClusterProvider, helm: PackageManager,
                          include_database: bool = True) -> DeploymentPlan:
    """
    Build the full deployment plan

    Order: namespace, repositories, postgres, kratos, hydra, keto, oathkeeper.
    When the database is provisioned elsewhere, check-core replaces postgres
    and runs first, so a missing database leaves the cluster untouched.

    Args:
        config: Deployment configuration
        cluster: Cluster provider
        helm: Package manager
        include_database: Provision PostgreSQL instead of checking for it

    Returns:
        DeploymentPlan
    """
    provisioner = PostgresProvisioner(config, cluster, helm)
    dsn_secrets = provisioner.credential_secrets()
    remediation = ErrorMessages.PROVISION_DATABASE_REMEDIATION.format(namespace=config.namespace)
    plan = DeploymentPlan(cluster, remediation=remediation)

    # An external database is verified before anything is created
    if not include_database:
        checker = PreconditionChecker(
            cluster,
            workload=config.postgres_workload,
            workload_namespace=config.database_namespace,
            secret_names=[secret.name for secret in dsn_secrets],
            secret_namespace=config.namespace,
            workload_kind=config.postgres_workload_kind,
        )
        plan.add_step(DeploymentStep(
            name="check-core",
            description="Verify the database workload and DSN secrets exist",
            action=checker.run,
        ))

    plan.add_step(DeploymentStep(
        name="namespace",
        description=f"Ensure namespace '{config.namespace}' exists",
        action=lambda: ensure_namespace(cluster, config.namespace),
    ))
    if include_database and config.database_namespace != config.namespace:
        plan.add_step(DeploymentStep(
            name="database-namespace",
            description=f"Ensure namespace '{config.database_namespace}' exists",
            action=lambda: ensure_namespace(cluster, config.database_namespace),
        ))
    plan.add_step(DeploymentStep(
        name="repositories",
        description="Register Helm chart repositories",
        action=lambda: register_repositories(helm),
    ))

    if include_database:
        plan.add_step(DeploymentStep(
            name="postgres",
            description=f"Install PostgreSQL release '{config.postgres_release}' and store DSN secrets",
            action=provisioner.deploy,
            produces=dsn_secrets,
            required_files=[provisioner.values_file],
        ))

    for definition in default_service_definitions(config).values():
        installer = create_installer(definition, config, cluster, helm)
        requires = [installer.dsn_secret] if installer.dsn_secret else []
        if definition.optional_secret:
            description = (f"Install {definition.display_name} ({definition.role}); "
                           f"optional secret {definition.optional_secret.name}")
        else:
            description = f"Install {definition.display_name} ({definition.role})"
        plan.add_step(DeploymentStep(
            name=definition.key,
            description=description,
            action=installer.install,
            requires=requires,
            required_files=installer.required_files(),
        ))

    return plan


def build_auxiliary_steps(config: DeploymentConfig, cluster: ClusterProvider,
                          helm: PackageManager) -> Dict[str, DeploymentStep]:
    """
    Steps runnable on their own but not part of the full plan

    ``check-core`` verifies an externally provisioned database; ``crds`` and
    ``rules`` run the gateway's CRD and rule stages alone.
    """
    definitions = default_service_definitions(config)
    gateway = GatewayInstaller(definitions[OryConstants.Service.OATHKEEPER.value], config, cluster, helm)
    provisioner = PostgresProvisioner(config, cluster, helm)
    checker = PreconditionChecker(
        cluster,
        workload=config.postgres_workload,
        workload_namespace=config.database_namespace,
        secret_names=[secret.name for secret in provisioner.credential_secrets()],
        secret_namespace=config.namespace,
        workload_kind=config.postgres_workload_kind,
    )
    return {
        "check-core": DeploymentStep(
            name="check-core",
            description="Verify the database workload and DSN secrets exist",
            action=checker.run,
        ),
        "crds": DeploymentStep(
            name="crds",
            description=f"Install the {OryConstants.RULES_CRD_NAME} CRD if absent",
            action=gateway.install_crds,
        ),
        "rules": DeploymentStep(
            name="rules",
            description=f"Apply access rules from {config.rules_dir}",
            action=gateway.apply_rules,
        ),
    }


def run_single_step(config: DeploymentConfig, cluster: ClusterProvider, helm: PackageManager,
                    name: str) -> None:
    """
    Run one named step with its declared checks

    Raises:
        ConfigurationError: If no step has that name
    """
    plan = build_deployment_plan(config, cluster, helm, include_database=True)
    auxiliary = build_auxiliary_steps(config, cluster, helm)

    step = auxiliary.get(name) or plan.get_step(name)
    for path in step.required_files:
        if not Path(path).is_file():
            raise MissingFileError(f"File required by step '{step.name}' not found: {path}", str(path))
    plan.run_step(step)


def available_step_names() -> List[str]:
    """Names accepted by run_single_step, in plan order"""
    names = ["namespace", "repositories", "postgres", "check-core"]
    names.extend(service.value for service in OryConstants.Service.install_order()
                 if service != OryConstants.Service.OATHKEEPER)
    names.extend(["crds", "rules", OryConstants.Service.OATHKEEPER.value])
    return names
