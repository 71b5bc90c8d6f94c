"""
Service Installers

One installer per Ory service. Each reads its DSN secret, generates fresh
runtime secrets, merges optional credentials when present, and installs or
upgrades its Helm release with the service's values overlay.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..core.config import DeploymentConfig
from ..core.constants import ErrorMessages, KubernetesConstants, OryConstants
from ..core.data_models import OptionalSecret, ReleaseSpec, SecretRef, ServiceDefinition
from ..core.exceptions import MissingFileError
from ..core.logging_utils import log_step
from ..core.protocols import ClusterProvider, PackageManager
from ..core.utils import generate_secret
from .access_rules import apply_access_rules, ensure_rules_crd

logger = logging.getLogger(__name__)

Service = OryConstants.Service


def default_service_definitions(config: DeploymentConfig) -> Dict[str, ServiceDefinition]:
    """
    Service definitions in installation order: identity, OAuth, permission, gateway

    Args:
        config: Deployment configuration

    Returns:
        Dict of service key -> definition, ordered
    """
    definitions = [
        ServiceDefinition(
            key=Service.KRATOS.value,
            display_name="Ory Kratos",
            role="identity",
            release=Service.KRATOS.value,
            chart=f"ory/{Service.KRATOS.value}",
            values_file=str(config.values_path(Service.KRATOS.value)),
            database=Service.KRATOS.value,
            dsn_override="kratos.config.dsn",
            generated_secrets=[
                "kratos.config.secrets.cookie[0]",
                "kratos.config.secrets.cipher[0]",
            ],
            optional_secret=OptionalSecret(
                name=OryConstants.SMTP_SECRET_NAME,
                key=OryConstants.SMTP_SECRET_KEY,
                override="kratos.config.courier.smtp.connection_uri",
                label="SMTP",
                consequence="Email delivery will not work",
                example_value=OryConstants.SMTP_EXAMPLE_URI,
            ),
            host_override="kratos.config.serve.public.base_url",
            host_template="https://{host}/",
            public_host=config.identity_host,
        ),
        ServiceDefinition(
            key=Service.HYDRA.value,
            display_name="Ory Hydra",
            role="oauth",
            release=Service.HYDRA.value,
            chart=f"ory/{Service.HYDRA.value}",
            values_file=str(config.values_path(Service.HYDRA.value)),
            database=Service.HYDRA.value,
            dsn_override="hydra.config.dsn",
            generated_secrets=[
                "hydra.config.secrets.system[0]",
                "hydra.config.secrets.cookie[0]",
            ],
            host_override="hydra.config.urls.self.issuer",
            host_template="https://{host}/",
            public_host=config.oauth_host,
        ),
        ServiceDefinition(
            key=Service.KETO.value,
            display_name="Ory Keto",
            role="permission",
            release=Service.KETO.value,
            chart=f"ory/{Service.KETO.value}",
            values_file=str(config.values_path(Service.KETO.value)),
            database=Service.KETO.value,
            dsn_override="keto.config.dsn",
        ),
        ServiceDefinition(
            key=Service.OATHKEEPER.value,
            display_name="Ory Oathkeeper",
            role="gateway",
            release=Service.OATHKEEPER.value,
            chart=f"ory/{Service.OATHKEEPER.value}",
            values_file=str(config.values_path(Service.OATHKEEPER.value)),
            skip_crds=True,
        ),
    ]
    return {definition.key: definition for definition in definitions}


class ServiceInstaller:
    """Installs one Ory service release"""

    def __init__(self, definition: ServiceDefinition, config: DeploymentConfig,
                 cluster: ClusterProvider, helm: PackageManager):
        self.definition = definition
        self.config = config
        self.cluster = cluster
        self.helm = helm

    @property
    def values_path(self) -> Path:
        return Path(self.definition.values_file)

    @property
    def dsn_secret(self) -> Optional[SecretRef]:
        """Secret holding the service's DSN, None for services without a database"""
        if not self.definition.database:
            return None
        return SecretRef(self.config.dsn_secret_name(self.definition.database), self.config.namespace)

    def required_files(self) -> List[Path]:
        return [self.values_path]

    def check_values_file(self) -> None:
        """
        Raises:
            MissingFileError: If the values overlay does not exist
        """
        if not self.values_path.is_file():
            raise MissingFileError(
                ErrorMessages.MISSING_VALUES_FILE.format(service=self.definition.display_name, path=self.values_path),
                str(self.values_path),
            )

    def read_optional_secret(self) -> Optional[str]:
        """
        Read the optional secret, warning with the exact fix if it is absent
        """
        optional = self.definition.optional_secret
        if optional is None:
            return None

        namespace = self.config.namespace
        if not self.cluster.secret_exists(optional.name, namespace):
            logger.warning(f"{optional.label} secret '{optional.name}' not found in namespace '{namespace}'")
            logger.warning(f"{optional.consequence}. Create secret with:")
            logger.warning(f"  kubectl create secret generic {optional.name} \\")
            logger.warning(f"    --namespace {namespace} \\")
            logger.warning(f"    --from-literal={optional.key}='{optional.example_value}'")
            return None

        value = self.cluster.read_secret(optional.name, namespace, optional.key)
        logger.info(f"Found {optional.label} credentials secret")
        return value

    def build_release(self) -> ReleaseSpec:
        """
        Assemble the release with DSN, generated secrets, host and optional overrides
        """
        definition = self.definition
        set_values = []
        set_string_values = []

        if self.dsn_secret:
            dsn = self.cluster.read_secret(
                self.dsn_secret.name, self.dsn_secret.namespace, KubernetesConstants.DSN_SECRET_KEY
            )
            set_values.append((definition.dsn_override, dsn))

        # New values on every run: redeploying a service rotates its secrets
        for override in definition.generated_secrets:
            set_values.append((override, generate_secret()))

        # An unset host keeps the URL from the values overlay
        if definition.host_override and definition.public_host:
            set_values.append((definition.host_override,
                               definition.host_template.format(host=definition.public_host)))

        optional_value = self.read_optional_secret()
        if optional_value:
            set_string_values.append((definition.optional_secret.override, optional_value))

        return ReleaseSpec(
            name=definition.release,
            chart=definition.chart,
            namespace=self.config.namespace,
            values_files=[str(self.values_path)],
            set_values=set_values,
            set_string_values=set_string_values,
            timeout=self.config.release_timeout,
            skip_crds=definition.skip_crds,
        )

    def install(self) -> None:
        """
        Raises:
            MissingFileError: If the values overlay does not exist
            PreconditionError: If the DSN secret is missing
            HelmError: If the release fails; the run aborts without rollback
        """
        log_step(logger, f"Deploying {self.definition.display_name} to {self.config.namespace}")
        self.check_values_file()
        self.helm.install_or_upgrade(self.build_release())
        logger.info(f"{self.definition.key.capitalize()} deployed")


class GatewayInstaller(ServiceInstaller):
    """Oathkeeper: installs its rule CRD and rules before the release itself"""

    def install_crds(self) -> bool:
        return ensure_rules_crd(self.cluster, OryConstants.RULES_CRD_NAME, self.config.rules_crd_url)

    def apply_rules(self) -> bool:
        return apply_access_rules(self.cluster, self.config.rules_dir, self.config.namespace)

    def install(self) -> None:
        log_step(logger, f"Deploying {self.definition.display_name} to {self.config.namespace}")
        self.check_values_file()
        self.install_crds()
        self.apply_rules()
        self.helm.install_or_upgrade(self.build_release())
        logger.info(f"{self.definition.key.capitalize()} deployed")


def create_installer(definition: ServiceDefinition, config: DeploymentConfig,
                     cluster: ClusterProvider, helm: PackageManager) -> ServiceInstaller:
    """Pick the installer class for a service"""
    if definition.key == Service.OATHKEEPER.value:
        return GatewayInstaller(definition, config, cluster, helm)
    return ServiceInstaller(definition, config, cluster, helm)
