"""
Database Provisioner

Installs the PostgreSQL release with an init script that creates one role
and database per Ory service, then stores each service's DSN as a secret.

Every run generates new role passwords and overwrites the stored DSNs. The
init script only runs on first initialisation of the data volume, so the
stored DSNs are only valid for the run that initialised the database.
"""

import logging
from typing import Dict, List
from urllib.parse import quote

from ..core.config import DeploymentConfig
from ..core.constants import ErrorMessages, FileConstants, KubernetesConstants, PostgresConstants
from ..core.data_models import ReleaseSpec, SecretRef
from ..core.exceptions import MissingFileError
from ..core.logging_utils import log_step
from ..core.protocols import ClusterProvider, PackageManager
from ..core.utils import generate_secret

logger = logging.getLogger(__name__)


def render_init_script(passwords: Dict[str, str]) -> str:
    """
    Render the SQL that creates a role and an owned database per entry

    Args:
        passwords: database/role name -> password

    Returns:
        str: Newline-separated SQL statements
    """
    statements = []
    for database, password in passwords.items():
        statements.append(f"CREATE USER {database} WITH PASSWORD '{password}';")
        statements.append(f"CREATE DATABASE {database} OWNER {database};")
    return "\n".join(statements)


def build_dsn(database: str, password: str, host: str, port: int) -> str:
    """Connection string for a service role, TLS disabled inside the cluster"""
    return (
        f"postgres://{quote(database, safe='')}:{quote(password, safe='')}@{host}:{port}/{database}"
        f"?sslmode={PostgresConstants.SSL_MODE}"
    )


class PostgresProvisioner:
    """Deploys PostgreSQL and publishes per-service DSN secrets"""

    def __init__(self, config: DeploymentConfig, cluster: ClusterProvider, helm: PackageManager):
        self.config = config
        self.cluster = cluster
        self.helm = helm

    @property
    def values_file(self):
        return self.config.values_dir / FileConstants.POSTGRES_VALUES_FILE

    @property
    def admin_secret(self) -> SecretRef:
        return SecretRef(self.config.postgres_resource_name, self.config.database_namespace)

    def credential_secrets(self) -> List[SecretRef]:
        """Secrets this provisioner writes"""
        return [
            SecretRef(self.config.dsn_secret_name(db), self.config.namespace)
            for db in self.config.databases
        ]

    def build_release(self, init_script: str) -> ReleaseSpec:
        return ReleaseSpec(
            name=self.config.postgres_release,
            chart=self.config.postgres_chart,
            namespace=self.config.database_namespace,
            values_files=[str(self.values_file)],
            set_string_values=[(PostgresConstants.INIT_SCRIPT_OVERRIDE, init_script)],
            timeout=self.config.release_timeout,
        )

    def deploy(self) -> Dict[str, str]:
        """
        Install or upgrade PostgreSQL and write the DSN secrets

        Returns:
            Dict of secret name -> DSN written

        Raises:
            MissingFileError: If the values overlay does not exist
            HelmError: If the release fails to install
            PreconditionError: If the chart did not create its admin secret
        """
        log_step(logger, f"Deploying PostgreSQL to {self.config.database_namespace}")

        if not self.values_file.is_file():
            raise MissingFileError(
                ErrorMessages.MISSING_VALUES_FILE.format(service="PostgreSQL", path=self.values_file),
                str(self.values_file),
            )

        passwords = {db: generate_secret() for db in self.config.databases}
        self.helm.install_or_upgrade(self.build_release(render_init_script(passwords)))

        # The chart generates the admin password; reading it confirms the release rendered
        self.cluster.read_secret(
            self.admin_secret.name, self.admin_secret.namespace, PostgresConstants.ADMIN_PASSWORD_KEY
        )

        written = {}
        for database, password in passwords.items():
            secret_name = self.config.dsn_secret_name(database)
            dsn = build_dsn(database, password, self.config.postgres_host, self.config.postgres_port)
            self.cluster.apply_secret(secret_name, self.config.namespace,
                                      {KubernetesConstants.DSN_SECRET_KEY: dsn})
            written[secret_name] = dsn
            logger.debug(f"Stored DSN for '{database}' in secret {self.config.namespace}/{secret_name}")

        logger.info("PostgreSQL deployed and DSN secrets created")
        return written
