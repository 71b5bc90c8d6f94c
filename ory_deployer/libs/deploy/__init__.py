"""
Deployment Steps

Namespace, database, service and gateway steps plus the plan that orders them.
"""

from .access_rules import apply_access_rules, ensure_rules_crd
from .namespace import ensure_namespace
from .plan import (
    DeploymentPlan,
    DeploymentStep,
    available_step_names,
    build_deployment_plan,
    run_single_step,
)
from .postgres import PostgresProvisioner
from .precondition import PreconditionChecker
from .services import GatewayInstaller, ServiceInstaller, create_installer, default_service_definitions

__all__ = [
    'apply_access_rules',
    'ensure_rules_crd',
    'ensure_namespace',
    'DeploymentPlan',
    'DeploymentStep',
    'available_step_names',
    'build_deployment_plan',
    'run_single_step',
    'PostgresProvisioner',
    'PreconditionChecker',
    'GatewayInstaller',
    'ServiceInstaller',
    'create_installer',
    'default_service_definitions',
]
