"""
Shared fixtures
"""

import pytest

from ory_deployer.libs.core.config import DeploymentConfig
from ory_deployer.libs.core.constants import FileConstants, OryConstants, PostgresConstants

from fakes import FakeCluster, FakeHelm


@pytest.fixture
def project_root(tmp_path):
    """Project tree with every values overlay present"""
    values_dir = tmp_path / FileConstants.VALUES_DIR
    values_dir.mkdir(parents=True)
    (values_dir / FileConstants.POSTGRES_VALUES_FILE).write_text("auth:\n  enablePostgresUser: true\n")
    for service in OryConstants.Service.install_order():
        (values_dir / FileConstants.values_file(service.value)).write_text(f"# {service.value}\n")
    return tmp_path


@pytest.fixture
def deployment_config(project_root):
    return DeploymentConfig(namespace="ory", project_root=project_root)


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def helm(cluster, deployment_config):
    fake = FakeHelm(cluster)

    def create_admin_secret(release):
        cluster.add_secret(deployment_config.postgres_resource_name, release.namespace,
                           {PostgresConstants.ADMIN_PASSWORD_KEY: "admin-password"})

    fake.on_install[deployment_config.postgres_release] = create_admin_secret
    return fake
