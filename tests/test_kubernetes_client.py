"""
Tests for the Kubernetes cluster client with mocked API objects
"""

import base64
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import requests
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import NotFoundError

from ory_deployer.libs.cluster.kubernetes_client import KubernetesCluster
from ory_deployer.libs.core.exceptions import ClusterError, MissingFileError, PreconditionError


@pytest.fixture
def k8s():
    cluster = KubernetesCluster(Mock())
    cluster.core_api = Mock()
    cluster.apps_api = Mock()
    cluster.extensions_api = Mock()
    cluster._dynamic_client = Mock()
    return cluster


def encoded(value):
    return base64.b64encode(value.encode()).decode()


class TestNamespaces:
    def test_namespace_exists(self, k8s):
        assert k8s.namespace_exists("ory") is True

    def test_namespace_missing(self, k8s):
        k8s.core_api.read_namespace.side_effect = ApiException(status=404)

        assert k8s.namespace_exists("ory") is False

    def test_forbidden_is_translated(self, k8s):
        k8s.core_api.read_namespace.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(ClusterError) as exc_info:
            k8s.namespace_exists("ory")

        assert exc_info.value.status == 403
        assert "RBAC" in str(exc_info.value)

    def test_create_conflict_raises(self, k8s):
        k8s.core_api.create_namespace.side_effect = ApiException(status=409, reason="AlreadyExists")

        with pytest.raises(ClusterError) as exc_info:
            k8s.create_namespace("ory")

        assert exc_info.value.status == 409


class TestWorkloads:
    """Workload lookup and pod phases"""

    def test_statefulset_with_running_pod(self, k8s):
        # Arrange
        statefulset = SimpleNamespace(spec=SimpleNamespace(
            selector=SimpleNamespace(match_labels={"app.kubernetes.io/instance": "ory-postgres"})))
        k8s.apps_api.read_namespaced_stateful_set.return_value = statefulset
        k8s.core_api.list_namespaced_pod.return_value = SimpleNamespace(items=[
            SimpleNamespace(status=SimpleNamespace(phase="Running")),
        ])

        # Act
        status = k8s.get_workload("ory-postgres-postgresql", "ory")

        # Assert
        assert status.ready is True
        k8s.core_api.list_namespaced_pod.assert_called_once_with(
            namespace="ory", label_selector="app.kubernetes.io/instance=ory-postgres")

    def test_missing_workload(self, k8s):
        k8s.apps_api.read_namespaced_deployment.side_effect = ApiException(status=404)

        assert k8s.get_workload("db", "ory", kind="deployment") is None

    def test_unsupported_kind(self, k8s):
        with pytest.raises(ClusterError):
            k8s.get_workload("db", "ory", kind="daemonset")


class TestSecrets:
    """Secret reading and writing"""

    def test_read_secret_decodes_value(self, k8s):
        k8s.core_api.read_namespaced_secret.return_value = SimpleNamespace(data={"dsn": encoded("postgres://x")})

        assert k8s.read_secret("kratos-db-credentials", "ory", "dsn") == "postgres://x"

    def test_read_missing_secret(self, k8s):
        k8s.core_api.read_namespaced_secret.side_effect = ApiException(status=404)

        with pytest.raises(PreconditionError) as exc_info:
            k8s.read_secret("kratos-db-credentials", "ory", "dsn")

        assert exc_info.value.resource == "kratos-db-credentials"

    def test_read_missing_key(self, k8s):
        k8s.core_api.read_namespaced_secret.return_value = SimpleNamespace(data={"other": encoded("x")})

        with pytest.raises(PreconditionError):
            k8s.read_secret("kratos-db-credentials", "ory", "dsn")

    def test_apply_secret_creates_when_absent(self, k8s):
        k8s.core_api.replace_namespaced_secret.side_effect = ApiException(status=404)

        k8s.apply_secret("kratos-db-credentials", "ory", {"dsn": "postgres://x"})

        body = k8s.core_api.create_namespaced_secret.call_args.kwargs["body"]
        assert body.string_data == {"dsn": "postgres://x"}
        assert body.type == "Opaque"

    def test_apply_secret_replaces_existing(self, k8s):
        k8s.apply_secret("kratos-db-credentials", "ory", {"dsn": "postgres://y"})

        k8s.core_api.replace_namespaced_secret.assert_called_once()
        k8s.core_api.create_namespaced_secret.assert_not_called()


class TestManifests:
    """CRD download and manifest application through the dynamic client"""

    def test_crd_exists(self, k8s):
        k8s.extensions_api.read_custom_resource_definition.side_effect = ApiException(status=404)

        assert k8s.crd_exists("rules.oathkeeper.ory.sh") is False

    def test_apply_manifests_creates_new_objects(self, k8s, tmp_path):
        # Arrange
        (tmp_path / "b-rule.yaml").write_text(
            "apiVersion: oathkeeper.ory.sh/v1alpha1\nkind: Rule\nmetadata:\n  name: b\n")
        (tmp_path / "a-rule.yaml").write_text(
            "apiVersion: oathkeeper.ory.sh/v1alpha1\nkind: Rule\nmetadata:\n  name: a\n")
        (tmp_path / "notes.txt").write_text("ignored")
        dynamic_client = k8s._dynamic_client
        dynamic_client.resources.get.return_value = SimpleNamespace(namespaced=True)
        dynamic_client.get.side_effect = NotFoundError(ApiException(status=404))

        # Act
        k8s.apply_manifests(tmp_path, "ory")

        # Assert
        created = [call.kwargs["body"]["metadata"]["name"] for call in dynamic_client.create.call_args_list]
        assert created == ["a", "b"]
        assert all(call.kwargs["namespace"] == "ory" for call in dynamic_client.create.call_args_list)

    def test_apply_manifests_replaces_existing(self, k8s, tmp_path):
        manifest = tmp_path / "rule.yaml"
        manifest.write_text(
            "apiVersion: oathkeeper.ory.sh/v1alpha1\nkind: Rule\nmetadata:\n  name: a\n  namespace: edge\n")
        dynamic_client = k8s._dynamic_client
        dynamic_client.resources.get.return_value = SimpleNamespace(namespaced=True)
        dynamic_client.get.return_value = SimpleNamespace(metadata=SimpleNamespace(resourceVersion="42"))

        k8s.apply_manifests(manifest, "ory")

        kwargs = dynamic_client.replace.call_args.kwargs
        assert kwargs["body"]["metadata"]["resourceVersion"] == "42"
        assert kwargs["namespace"] == "edge"

    def test_apply_missing_path(self, k8s, tmp_path):
        with pytest.raises(MissingFileError):
            k8s.apply_manifests(tmp_path / "missing")

    @patch("ory_deployer.libs.cluster.kubernetes_client.requests.get")
    def test_apply_manifest_url_waits_for_crd(self, mock_get, k8s):
        # Arrange
        mock_get.return_value = Mock(text=(
            "apiVersion: apiextensions.k8s.io/v1\n"
            "kind: CustomResourceDefinition\n"
            "metadata:\n  name: rules.oathkeeper.ory.sh\n"
        ))
        dynamic_client = k8s._dynamic_client
        dynamic_client.resources.get.return_value = SimpleNamespace(namespaced=False)
        dynamic_client.get.side_effect = NotFoundError(ApiException(status=404))
        established = SimpleNamespace(type="Established", status="True")
        k8s.extensions_api.read_custom_resource_definition.return_value = SimpleNamespace(
            status=SimpleNamespace(conditions=[established]))

        # Act
        k8s.apply_manifest_url("https://example.com/crd.yaml")

        # Assert
        assert dynamic_client.create.call_args.kwargs["namespace"] is None
        k8s.extensions_api.read_custom_resource_definition.assert_called_once_with(
            name="rules.oathkeeper.ory.sh")

    @patch("ory_deployer.libs.cluster.kubernetes_client.requests.get")
    def test_download_failure(self, mock_get, k8s):
        mock_get.side_effect = requests.ConnectionError("unreachable")

        with pytest.raises(ClusterError):
            k8s.apply_manifest_url("https://example.com/crd.yaml")
