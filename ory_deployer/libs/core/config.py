"""
Configuration Management

Builds the explicit configuration structs threaded through every deployment
operation. Values come from (lowest to highest precedence) built-in defaults,
an optional YAML configuration file, environment variables and command-line
flags.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from decouple import config as env_config

from .constants import (
    FileConstants,
    HelmConstants,
    KubernetesConstants,
    NetworkConstants,
    OryConstants,
    PostgresConstants,
)
from .exceptions import ConfigurationError
from .utils import validate_database_name, validate_helm_duration, validate_namespace, validate_url

logger = logging.getLogger(__name__)


@dataclass
class DeploymentConfig:
    """Everything a deployment run needs to know"""
    namespace: str = KubernetesConstants.DEFAULT_NAMESPACE
    database_namespace: Optional[str] = None
    project_root: Path = field(default_factory=Path.cwd)
    values_dir: Optional[Path] = None
    rules_dir: Optional[Path] = None
    postgres_release: str = PostgresConstants.DEFAULT_RELEASE
    postgres_chart: str = PostgresConstants.DEFAULT_CHART
    postgres_workload: Optional[str] = None
    postgres_workload_kind: str = KubernetesConstants.WorkloadKind.STATEFULSET.value
    postgres_port: int = PostgresConstants.DEFAULT_PORT
    databases: List[str] = field(default_factory=lambda: list(PostgresConstants.DEFAULT_DATABASES))
    release_timeout: str = HelmConstants.DEFAULT_TIMEOUT
    identity_host: Optional[str] = None
    oauth_host: Optional[str] = None
    gateway_host: Optional[str] = None
    rules_crd_url: str = OryConstants.RULES_CRD_URL
    kube_context: Optional[str] = None
    skip_tls: bool = False
    debug: bool = False

    def __post_init__(self):
        self.project_root = Path(self.project_root)
        if self.database_namespace is None:
            self.database_namespace = self.namespace
        if self.values_dir is None:
            self.values_dir = self.project_root / FileConstants.VALUES_DIR
        if self.rules_dir is None:
            self.rules_dir = self.project_root / FileConstants.RULES_DIR
        self.values_dir = Path(self.values_dir)
        self.rules_dir = Path(self.rules_dir)
        if self.postgres_workload is None:
            self.postgres_workload = self.postgres_resource_name

    def validate(self) -> None:
        """
        Validate configuration values

        Raises:
            ConfigurationError: If a value is invalid
        """
        validate_namespace(self.namespace)
        validate_namespace(self.database_namespace)
        validate_helm_duration(self.release_timeout)
        validate_url(self.rules_crd_url)

        kinds = [str(kind) for kind in KubernetesConstants.WorkloadKind]
        if self.postgres_workload_kind not in kinds:
            raise ConfigurationError(
                f"postgres.workload_kind must be one of: {', '.join(kinds)}"
            )
        if not self.databases:
            raise ConfigurationError("postgres.databases must list at least one database")
        for database in self.databases:
            validate_database_name(database)

    @property
    def postgres_resource_name(self) -> str:
        """Name Bitnami gives the service, statefulset and admin secret"""
        return f"{self.postgres_release}{PostgresConstants.RESOURCE_SUFFIX}"

    @property
    def postgres_host(self) -> str:
        """In-cluster DNS name of the database service"""
        return f"{self.postgres_resource_name}.{self.database_namespace}.svc.cluster.local"

    def values_path(self, name: str) -> Path:
        """Path of the values overlay for a release"""
        return self.values_dir / FileConstants.values_file(name)

    @staticmethod
    def dsn_secret_name(database: str) -> str:
        return f"{database}{PostgresConstants.CREDENTIALS_SECRET_SUFFIX}"


@dataclass
class LoginConfig:
    """Inputs of the login flow tester"""
    base_url: str
    identifier: str
    password: str
    timeout: int = NetworkConstants.DEFAULT_TIMEOUT
    verify_tls: bool = True

    def validate(self) -> None:
        if not self.base_url:
            raise ConfigurationError("Kratos URL is required (--url or KRATOS_URL)")
        validate_url(self.base_url)
        if not self.identifier:
            raise ConfigurationError("Login identifier (email) is required")
        if not self.password:
            raise ConfigurationError("Login password is required")


class ConfigManager:
    """Manages configuration loading and validation"""

    # Configuration schema - defines expected structure and types
    CONFIG_SCHEMA = {
        'cluster': {
            'type': dict,
            'required': False,
            'fields': {
                'namespace': {'type': str, 'required': False},
                'database_namespace': {'type': str, 'required': False},
                'context': {'type': str, 'required': False},
                'skip_tls': {'type': bool, 'required': False},
            }
        },
        'paths': {
            'type': dict,
            'required': False,
            'fields': {
                'project_root': {'type': str, 'required': False},
                'values_dir': {'type': str, 'required': False},
                'rules_dir': {'type': str, 'required': False},
            }
        },
        'postgres': {
            'type': dict,
            'required': False,
            'fields': {
                'release': {'type': str, 'required': False},
                'chart': {'type': str, 'required': False},
                'workload': {'type': str, 'required': False},
                'workload_kind': {'type': str, 'required': False,
                                  'choices': [str(k) for k in KubernetesConstants.WorkloadKind]},
                'port': {'type': int, 'required': False},
                'databases': {'type': list, 'required': False},
            }
        },
        'helm': {
            'type': dict,
            'required': False,
            'fields': {
                'timeout': {'type': str, 'required': False},
            }
        },
        'hosts': {
            'type': dict,
            'required': False,
            'fields': {
                'identity': {'type': str, 'required': False},
                'oauth': {'type': str, 'required': False},
                'gateway': {'type': str, 'required': False},
            }
        },
        'oathkeeper': {
            'type': dict,
            'required': False,
            'fields': {
                'rules_crd_url': {'type': str, 'required': False},
            }
        },
        'login': {
            'type': dict,
            'required': False,
            'fields': {
                'url': {'type': str, 'required': False},
                'email': {'type': str, 'required': False},
            }
        },
        'global': {
            'type': dict,
            'required': False,
            'fields': {
                'debug': {'type': bool, 'required': False},
            }
        },
    }

    # (config section, key) -> DeploymentConfig field
    FIELD_MAP = {
        ('cluster', 'namespace'): 'namespace',
        ('cluster', 'database_namespace'): 'database_namespace',
        ('cluster', 'context'): 'kube_context',
        ('cluster', 'skip_tls'): 'skip_tls',
        ('paths', 'project_root'): 'project_root',
        ('paths', 'values_dir'): 'values_dir',
        ('paths', 'rules_dir'): 'rules_dir',
        ('postgres', 'release'): 'postgres_release',
        ('postgres', 'chart'): 'postgres_chart',
        ('postgres', 'workload'): 'postgres_workload',
        ('postgres', 'workload_kind'): 'postgres_workload_kind',
        ('postgres', 'port'): 'postgres_port',
        ('postgres', 'databases'): 'databases',
        ('helm', 'timeout'): 'release_timeout',
        ('hosts', 'identity'): 'identity_host',
        ('hosts', 'oauth'): 'oauth_host',
        ('hosts', 'gateway'): 'gateway_host',
        ('oathkeeper', 'rules_crd_url'): 'rules_crd_url',
        ('global', 'debug'): 'debug',
    }

    # Environment variable -> DeploymentConfig field
    ENV_MAP = {
        'ORY_NAMESPACE': 'namespace',
        'ORY_DATABASE_NAMESPACE': 'database_namespace',
        'ORY_PROJECT_ROOT': 'project_root',
        'ORY_POSTGRES_RELEASE': 'postgres_release',
        'ORY_RELEASE_TIMEOUT': 'release_timeout',
        'ORY_IDENTITY_HOST': 'identity_host',
        'ORY_OAUTH_HOST': 'oauth_host',
        'ORY_GATEWAY_HOST': 'gateway_host',
        'ORY_KUBE_CONTEXT': 'kube_context',
    }

    def __init__(self):
        """Initialize configuration manager"""
        self.config_data = {}
        self.config_file_path = None

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file

        Args:
            config_path: Path to configuration file

        Returns:
            Dict containing configuration data

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid
        """
        config_file = Path(config_path)

        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if not config_file.is_file():
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_file, 'r') as f:
                self.config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration from {config_path}: {e}")

        self.config_file_path = config_path
        logger.debug(f"Loaded configuration from {config_path}")

        self._validate_config()
        return self.config_data

    def _validate_config(self) -> None:
        if not isinstance(self.config_data, dict):
            raise ConfigurationError("Configuration must be a dictionary")

        self._validate_against_schema(self.config_data, self.CONFIG_SCHEMA, "config")

    def _validate_against_schema(self, data: Dict[str, Any], schema: Dict[str, Any], path: str = "") -> None:
        """
        Validate data against schema definition

        Raises:
            ConfigurationError: If data doesn't match schema
        """
        for key in data:
            if key not in schema:
                raise ConfigurationError(f"Unknown configuration key {path}.{key}")

        for key, field_schema in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key not in data:
                if field_schema.get('required', False):
                    raise ConfigurationError(f"Required field {current_path} is missing")
                continue

            value = data[key]
            if value is None and not field_schema.get('required', False):
                continue

            expected_type = field_schema['type']
            # bool is a subclass of int; a port of "true" is still wrong
            if not isinstance(value, expected_type) or (expected_type is int and isinstance(value, bool)):
                raise ConfigurationError(f"{current_path} must be a {expected_type.__name__}")

            if 'choices' in field_schema and value not in field_schema['choices']:
                choices_str = ', '.join(f"'{c}'" for c in field_schema['choices'])
                raise ConfigurationError(f"{current_path} must be one of: {choices_str}")

            if expected_type is dict and 'fields' in field_schema:
                self._validate_against_schema(value, field_schema['fields'], current_path)

    def get_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dotted key, e.g. 'cluster.namespace'
        """
        value = self.config_data
        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def build_deployment_config(self, overrides: Optional[Dict[str, Any]] = None) -> DeploymentConfig:
        """
        Build the deployment configuration from file data, environment and overrides

        Args:
            overrides: DeploymentConfig field values from the command line;
                None values are ignored

        Returns:
            DeploymentConfig: Validated configuration

        Raises:
            ConfigurationError: If the resulting configuration is invalid
        """
        values: Dict[str, Any] = {}

        for (section, key), field_name in self.FIELD_MAP.items():
            value = self.get_value(f"{section}.{key}")
            if value is not None:
                values[field_name] = value

        for env_name, field_name in self.ENV_MAP.items():
            value = env_config(env_name, default=None)
            if value:
                values[field_name] = value

        for field_name, value in (overrides or {}).items():
            if value is not None:
                values[field_name] = value

        try:
            deployment_config = DeploymentConfig(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid deployment configuration: {e}")

        deployment_config.validate()
        return deployment_config

    def build_login_config(self, url: Optional[str] = None, email: Optional[str] = None,
                           password: Optional[str] = None, skip_tls: bool = False) -> LoginConfig:
        """
        Build the login tester configuration

        Precedence: explicit arguments, then KRATOS_URL / LOGIN_EMAIL /
        LOGIN_PASSWORD, then the login section of the configuration file.
        The password is never read from the configuration file.
        """
        base_url = url or env_config('KRATOS_URL', default=None) or self.get_value('login.url')
        if not base_url:
            identity_host = env_config('ORY_IDENTITY_HOST', default=None) or self.get_value('hosts.identity')
            base_url = f"https://{identity_host}" if identity_host else ""

        login_config = LoginConfig(
            base_url=base_url.rstrip('/'),
            identifier=email or env_config('LOGIN_EMAIL', default=None) or self.get_value('login.email') or "",
            password=password or env_config('LOGIN_PASSWORD', default=""),
            verify_tls=not skip_tls,
        )
        login_config.validate()
        return login_config

    def get_config_template_content(self) -> str:
        """
        Generate configuration template content as string without file I/O

        Returns:
            str: YAML configuration template content
        """
        template = {
            'cluster': {
                'namespace': KubernetesConstants.DEFAULT_NAMESPACE,
                'database_namespace': KubernetesConstants.DEFAULT_NAMESPACE,
                'skip_tls': False,
            },
            'paths': {
                'project_root': '.',
            },
            'postgres': {
                'release': PostgresConstants.DEFAULT_RELEASE,
                'chart': PostgresConstants.DEFAULT_CHART,
                'workload_kind': KubernetesConstants.WorkloadKind.STATEFULSET.value,
                'port': PostgresConstants.DEFAULT_PORT,
                'databases': list(PostgresConstants.DEFAULT_DATABASES),
            },
            'helm': {
                'timeout': HelmConstants.DEFAULT_TIMEOUT,
            },
            'hosts': {
                'identity': None,
                'oauth': None,
                'gateway': None,
            },
            'login': {
                'url': "https://kratos.example.com",
                'email': "user@example.com",
            },
            'global': {
                'debug': False,
            },
        }

        header = (
            "# Ory Deployer Configuration File\n"
            "# Environment variables (ORY_NAMESPACE, ORY_POSTGRES_RELEASE, ...) and\n"
            "# command-line flags take precedence over these values.\n"
            "# The login password is read from LOGIN_PASSWORD only.\n"
            "# hosts: left null, the public URLs come from the values overlays.\n"
        )
        return header + yaml.safe_dump(template, default_flow_style=False, sort_keys=False)

    def generate_config_template(self, output_dir: Optional[str] = None) -> str:
        """
        Write the configuration template to a file

        Args:
            output_dir: Directory to save template (optional)

        Returns:
            str: Path to generated template file
        """
        if output_dir:
            output_path = Path(output_dir)
            output_path.mkdir(parents=True, exist_ok=True)
            config_file = output_path / FileConstants.DEFAULT_CONFIG_FILE
        else:
            config_file = Path(FileConstants.DEFAULT_CONFIG_FILE)

        try:
            config_file.write_text(self.get_config_template_content())
        except OSError as e:
            raise ConfigurationError(f"Failed to generate configuration template: {e}")

        logger.info(f"Configuration template generated: {config_file}")
        return str(config_file)
