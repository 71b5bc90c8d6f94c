"""
Tests for core utilities
"""

import pytest
from kubernetes.client.rest import ApiException

from ory_deployer.libs.core.exceptions import ClusterError, ConfigurationError
from ory_deployer.libs.core.utils import (
    MASK,
    generate_secret,
    handle_api_error,
    mask_sensitive_info,
    validate_database_name,
    validate_helm_duration,
    validate_namespace,
    validate_url,
)


class TestGenerateSecret:
    """Random secret generation"""

    def test_default_length_and_alphabet(self):
        secret = generate_secret()

        assert len(secret) == 32
        assert not any(c in secret for c in "=+/")

    def test_fresh_value_each_call(self):
        assert generate_secret() != generate_secret()

    def test_longer_than_one_block(self):
        assert len(generate_secret(100)) == 100

    def test_non_positive_length(self):
        with pytest.raises(ConfigurationError):
            generate_secret(0)


class TestValidators:
    @pytest.mark.parametrize("namespace", ["ory", "ory-prod", "a1"])
    def test_valid_namespaces(self, namespace):
        assert validate_namespace(namespace) is True

    @pytest.mark.parametrize("namespace", ["", "Ory", "-ory", "ory_prod", "a" * 64])
    def test_invalid_namespaces(self, namespace):
        with pytest.raises(ConfigurationError):
            validate_namespace(namespace)

    @pytest.mark.parametrize("name", ["kratos", "keto2"])
    def test_valid_database_names(self, name):
        assert validate_database_name(name) is True

    @pytest.mark.parametrize("name", ["", "my-db", "my_db", "Kratos", "2keto", "a" * 64])
    def test_invalid_database_names(self, name):
        """Names end up unquoted in CREATE USER and in secret names"""
        with pytest.raises(ConfigurationError):
            validate_database_name(name)

    @pytest.mark.parametrize("duration", ["5m", "300s", "1h30m"])
    def test_valid_durations(self, duration):
        assert validate_helm_duration(duration) is True

    @pytest.mark.parametrize("duration", ["", "5", "five"])
    def test_invalid_durations(self, duration):
        with pytest.raises(ConfigurationError):
            validate_helm_duration(duration)

    def test_url(self):
        assert validate_url("https://kratos.example.com:4433/") is True
        with pytest.raises(ConfigurationError):
            validate_url("kratos.example.com")


class TestMaskSensitiveInfo:
    def test_literal_values(self):
        assert mask_sensitive_info("token abc123 here", ["abc123"]) == f"token {MASK} here"

    def test_dsn_password(self):
        masked = mask_sensitive_info("postgres://kratos:hunter2@db:5432/kratos")

        assert "hunter2" not in masked
        assert masked.startswith("postgres://kratos:")

    def test_bearer_token(self):
        assert "eyJhbGci" not in mask_sensitive_info("Authorization: Bearer eyJhbGci.x.y")


class TestHandleApiError:
    def test_unauthorized(self):
        with pytest.raises(ClusterError) as exc_info:
            handle_api_error(ApiException(status=401, reason="Unauthorized"), "Reading secret")

        assert exc_info.value.status == 401
        assert str(exc_info.value).startswith("Reading secret: Unauthorized (401)")

    def test_other_status_uses_reason(self):
        with pytest.raises(ClusterError) as exc_info:
            handle_api_error(ApiException(status=500, reason="Internal Server Error"), "Creating namespace")

        assert str(exc_info.value) == "Creating namespace: Internal Server Error"
