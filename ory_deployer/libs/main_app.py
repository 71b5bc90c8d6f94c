"""
Main Application

Wires configuration, cluster access and Helm into the deployment plan and
exposes it as the ``ory-deployer`` command.
"""

import argparse
import logging
import sys
from typing import Any, Dict, Optional

from .cluster import HelmClient, KubernetesCluster
from .core import ConfigManager, DeploymentConfig, KubernetesAuth, log_step, setup_logging
from .core.exceptions import OryDeployerError
from .core.protocols import ClusterProvider, PackageManager
from .deploy import available_step_names, build_deployment_plan, run_single_step
from .login import LoginFlowTester

logger = logging.getLogger(__name__)


class OryDeployer:
    """Main application orchestrator for the Ory stack deployment"""

    def __init__(
        self,
        config: DeploymentConfig,
        cluster_provider: Optional[ClusterProvider] = None,
        package_manager: Optional[PackageManager] = None,
        auth: Optional[KubernetesAuth] = None,
        api_url: Optional[str] = None,
        token: Optional[str] = None,
    ):
        """
        Initialize the deployer with dependency injection

        Args:
            config: Deployment configuration
            cluster_provider: Cluster provider (defaults to KubernetesCluster, created on first use)
            package_manager: Package manager (defaults to HelmClient)
            auth: Kubernetes authentication (defaults to KubernetesAuth)
            api_url: Kubernetes API URL for token authentication
            token: Bearer token for token authentication
        """
        self.config = config
        self.api_url = api_url
        self.token = token
        self.auth = auth or KubernetesAuth(skip_tls=config.skip_tls, context=config.kube_context)
        self.helm = package_manager or HelmClient(kube_context=config.kube_context)
        self._cluster = cluster_provider

    @property
    def cluster(self) -> ClusterProvider:
        """Cluster provider, authenticating on first access"""
        if self._cluster is None:
            api_client = self.auth.configure_auth(self.api_url, self.token)
            self._cluster = KubernetesCluster(api_client, verify_tls=not self.config.skip_tls)
            logger.debug("Configured Kubernetes cluster access")
        return self._cluster

    def deploy(self, include_database: bool = True) -> None:
        """
        Run the full deployment plan

        Raises:
            OryDeployerError: From the first failing step
        """
        plan = build_deployment_plan(self.config, self.cluster, self.helm, include_database)
        plan.run()
        log_step(logger, "Ory stack deployment complete")
        logger.info(f"Namespace: {self.config.namespace}")
        for label, host in (('Identity', self.config.identity_host), ('OAuth2', self.config.oauth_host),
                            ('Gateway', self.config.gateway_host)):
            if host:
                logger.info(f"{label + ':':<10}https://{host}/")

    def run_step(self, name: str) -> None:
        run_single_step(self.config, self.cluster, self.helm, name)

    def check_core(self) -> None:
        run_single_step(self.config, self.cluster, self.helm, "check-core")
        logger.info("Core database prerequisites are in place")

    def describe_plan(self, include_database: bool = True) -> str:
        """Ordered plan as text; does not touch the cluster"""
        plan = build_deployment_plan(self.config, self._cluster, self.helm, include_database)
        plan.validate()
        return "\n".join(plan.describe())


def create_ory_deployer(config: DeploymentConfig, api_url: Optional[str] = None,
                        token: Optional[str] = None) -> OryDeployer:
    """
    Factory function to create OryDeployer with default dependencies

    Args:
        config: Deployment configuration
        api_url: Kubernetes API URL (optional)
        token: Bearer token (optional)

    Returns:
        OryDeployer: Configured instance
    """
    return OryDeployer(config, api_url=api_url, token=token)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the argument parser; shared flags live on parent parsers"""

    # Arguments shared by all commands
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument('--config', help='Configuration file path')
    common_parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    # Arguments for commands that build a deployment configuration
    deploy_parser_args = argparse.ArgumentParser(add_help=False)
    deploy_parser_args.add_argument('--namespace', help='Namespace for the Ory services (default: ory)')
    deploy_parser_args.add_argument('--database-namespace', help='Namespace for PostgreSQL (default: --namespace)')
    deploy_parser_args.add_argument('--project-root', help='Directory holding helm/values and k8s/crds')
    deploy_parser_args.add_argument('--timeout', help='Helm wait timeout per release (default: 5m)')

    # Arguments for commands that talk to the cluster
    cluster_parser = argparse.ArgumentParser(add_help=False)
    cluster_parser.add_argument('--context', help='kubeconfig context')
    cluster_parser.add_argument('--api-url', help='Kubernetes API server URL')
    cluster_parser.add_argument('--token', help='Kubernetes bearer token')
    cluster_parser.add_argument('--skip-tls', action='store_true', help='Skip TLS verification')

    parser = argparse.ArgumentParser(
        prog='ory-deployer',
        description='Deploy the Ory stack (Kratos, Hydra, Keto, Oathkeeper) onto Kubernetes with Helm',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ory-deployer deploy
  ory-deployer deploy --skip-database --namespace ory
  ory-deployer step kratos --project-root ./deploy
  ory-deployer plan
  ory-deployer login --url https://kratos.example.com --email user@example.com
  ory-deployer generate-config --output ./config

Use --help with specific commands for detailed help.
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    deploy_parser = subparsers.add_parser(
        'deploy',
        parents=[common_parser, deploy_parser_args, cluster_parser],
        help='Deploy the full stack',
        description='Run every deployment step in order'
    )
    deploy_parser.add_argument('--skip-database', action='store_true',
                               help='Check for an existing database instead of installing PostgreSQL')

    step_parser = subparsers.add_parser(
        'step',
        parents=[common_parser, deploy_parser_args, cluster_parser],
        help='Run a single deployment step',
        description='Run one named deployment step with its checks'
    )
    step_parser.add_argument('name', choices=available_step_names(), help='Step to run')

    subparsers.add_parser(
        'check-core',
        parents=[common_parser, deploy_parser_args, cluster_parser],
        help='Verify the database workload and DSN secrets',
        description='Check that PostgreSQL is running and the DSN secrets exist'
    )

    plan_parser = subparsers.add_parser(
        'plan',
        parents=[common_parser, deploy_parser_args],
        help='Show the deployment plan',
        description='Print the ordered steps with the secrets and files each uses'
    )
    plan_parser.add_argument('--skip-database', action='store_true',
                             help='Show the plan for an existing database')

    login_parser = subparsers.add_parser(
        'login',
        parents=[common_parser],
        help='Test the Kratos login flow',
        description='Start an API login flow, submit a password and print the session token'
    )
    login_parser.add_argument('--url', help='Kratos public URL (or KRATOS_URL)')
    login_parser.add_argument('--email', help='Login identifier (or LOGIN_EMAIL)')
    login_parser.add_argument('--password', help='Login password (or LOGIN_PASSWORD)')
    login_parser.add_argument('--skip-tls', action='store_true', help='Skip TLS verification')

    generate_parser = subparsers.add_parser(
        'generate-config',
        parents=[common_parser],
        help='Generate a configuration template',
        description='Print a configuration template, or write it with --output'
    )
    generate_parser.add_argument('--output', help='Directory to write the template to')

    return parser


def load_config_manager(args) -> ConfigManager:
    config_manager = ConfigManager()
    if getattr(args, 'config', None):
        config_manager.load_config(args.config)
    return config_manager


def build_overrides(args) -> Dict[str, Any]:
    """DeploymentConfig overrides from command-line flags"""
    overrides = {
        'namespace': getattr(args, 'namespace', None),
        'database_namespace': getattr(args, 'database_namespace', None),
        'project_root': getattr(args, 'project_root', None),
        'release_timeout': getattr(args, 'timeout', None),
        'kube_context': getattr(args, 'context', None),
    }
    if getattr(args, 'skip_tls', False):
        overrides['skip_tls'] = True
    if getattr(args, 'debug', False):
        overrides['debug'] = True
    return overrides


def create_deployer_from_args(args, config_manager: ConfigManager) -> OryDeployer:
    config = config_manager.build_deployment_config(build_overrides(args))
    return create_ory_deployer(config, getattr(args, 'api_url', None), getattr(args, 'token', None))


def handle_deploy_command(args, config_manager: ConfigManager) -> int:
    deployer = create_deployer_from_args(args, config_manager)
    deployer.deploy(include_database=not args.skip_database)
    return 0


def handle_step_command(args, config_manager: ConfigManager) -> int:
    deployer = create_deployer_from_args(args, config_manager)
    deployer.run_step(args.name)
    return 0


def handle_check_core_command(args, config_manager: ConfigManager) -> int:
    deployer = create_deployer_from_args(args, config_manager)
    deployer.check_core()
    return 0


def handle_plan_command(args, config_manager: ConfigManager) -> int:
    deployer = create_deployer_from_args(args, config_manager)
    print(deployer.describe_plan(include_database=not args.skip_database))
    return 0


def handle_login_command(args, config_manager: ConfigManager) -> int:
    login_config = config_manager.build_login_config(args.url, args.email, args.password, args.skip_tls)
    LoginFlowTester(login_config).run()
    return 0


def handle_generate_config_command(args, config_manager: ConfigManager) -> int:
    if args.output:
        path = config_manager.generate_config_template(args.output)
        logger.info(f"Configuration template written to {path}")
    else:
        print(config_manager.get_config_template_content())
    return 0


# Command dispatcher mapping
COMMAND_HANDLERS = {
    'deploy': handle_deploy_command,
    'step': handle_step_command,
    'check-core': handle_check_core_command,
    'plan': handle_plan_command,
    'login': handle_login_command,
    'generate-config': handle_generate_config_command,
}


def main(argv=None) -> int:
    """
    Main entry point

    Returns:
        int: Exit code (0 for success, 1 for any failure)
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(getattr(args, 'debug', False))

    try:
        config_manager = load_config_manager(args)
        if config_manager.get_value('global.debug') and not args.debug:
            setup_logging(True)
        return COMMAND_HANDLERS[args.command](args, config_manager)
    except OryDeployerError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.error("Operation cancelled by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
