"""
Tests for the Helm client
"""

from unittest.mock import Mock, patch

import pytest

from ory_deployer.libs.cluster.helm_client import HelmClient, build_install_command, escape_set_value
from ory_deployer.libs.core.data_models import ReleaseSpec
from ory_deployer.libs.core.exceptions import HelmError


def make_release(**overrides):
    values = dict(
        name="kratos",
        chart="ory/kratos",
        namespace="ory",
        values_files=["helm/values/values-kratos.yaml"],
        set_values=[("kratos.config.dsn", "postgres://kratos:pw@db:5432/kratos?sslmode=disable")],
        set_string_values=[("kratos.config.courier.smtp.connection_uri", "smtps://u:p@smtp:465")],
    )
    values.update(overrides)
    return ReleaseSpec(**values)


class TestBuildInstallCommand:
    """Command line assembly"""

    def test_full_command(self):
        cmd = build_install_command(make_release(), "helm")

        assert cmd == [
            "helm", "upgrade", "--install", "kratos", "ory/kratos",
            "--namespace", "ory",
            "-f", "helm/values/values-kratos.yaml",
            "--set", "kratos.config.dsn=postgres://kratos:pw@db:5432/kratos?sslmode=disable",
            "--set-string", "kratos.config.courier.smtp.connection_uri=smtps://u:p@smtp:465",
            "--wait", "--timeout=5m",
        ]

    def test_skip_crds_and_custom_timeout(self):
        cmd = build_install_command(make_release(set_values=[], set_string_values=[], skip_crds=True,
                                                 timeout="10m"), "helm")

        assert cmd[-3:] == ["--wait", "--timeout=10m", "--skip-crds"]

    def test_no_wait(self):
        cmd = build_install_command(make_release(wait=False), "helm")

        assert "--wait" not in cmd
        assert not any(arg.startswith("--timeout") for arg in cmd)

    def test_escape_set_value(self):
        assert escape_set_value("a,b\\c") == "a\\,b\\\\c"


class TestHelmClient:
    """Subprocess execution"""

    @patch("ory_deployer.libs.cluster.helm_client.shutil.which", return_value=None)
    def test_missing_binary(self, mock_which):
        with pytest.raises(HelmError) as exc_info:
            HelmClient().install_or_upgrade(make_release())

        assert "helm" in str(exc_info.value).lower()

    @patch("ory_deployer.libs.cluster.helm_client.subprocess.run")
    @patch("ory_deployer.libs.cluster.helm_client.shutil.which", return_value="/usr/bin/helm")
    def test_install_runs_helm(self, mock_which, mock_run):
        # Arrange
        mock_run.return_value = Mock(returncode=0, stdout="Release \"kratos\" has been upgraded", stderr="")

        # Act
        HelmClient(kube_context="prod").install_or_upgrade(make_release())

        # Assert
        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["/usr/bin/helm", "upgrade", "--install"]
        assert cmd[-2:] == ["--kube-context", "prod"]

    @patch("ory_deployer.libs.cluster.helm_client.subprocess.run")
    def test_non_zero_exit_raises(self, mock_run):
        mock_run.return_value = Mock(returncode=1, stdout="", stderr="Error: timed out waiting for the condition")

        with pytest.raises(HelmError) as exc_info:
            HelmClient(helm_binary="helm").install_or_upgrade(make_release())

        error = exc_info.value
        assert error.returncode == 1
        assert "timed out" in error.stderr
        assert error.command[0] == "helm"

    @patch("ory_deployer.libs.cluster.helm_client.subprocess.run")
    def test_secret_values_masked_in_error(self, mock_run):
        """Override values echoed by helm do not reach the error message"""
        mock_run.return_value = Mock(returncode=1, stdout="",
                                     stderr="Error: bad value postgres://kratos:pw@db:5432/kratos?sslmode=disable")

        with pytest.raises(HelmError) as exc_info:
            HelmClient(helm_binary="helm").install_or_upgrade(make_release())

        assert "kratos:pw@" not in str(exc_info.value)

    @patch("ory_deployer.libs.cluster.helm_client.subprocess.run")
    def test_os_error_raises_helm_error(self, mock_run):
        mock_run.side_effect = OSError("exec format error")

        with pytest.raises(HelmError):
            HelmClient(helm_binary="helm").update_repositories()

    @patch("ory_deployer.libs.cluster.helm_client.subprocess.run")
    def test_repository_commands(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="", stderr="")
        helm = HelmClient(helm_binary="helm")

        helm.add_repository("ory", "https://k8s.ory.sh/helm/charts")
        helm.update_repositories()

        commands = [call[0][0] for call in mock_run.call_args_list]
        assert commands == [
            ["helm", "repo", "add", "ory", "https://k8s.ory.sh/helm/charts", "--force-update"],
            ["helm", "repo", "update"],
        ]
