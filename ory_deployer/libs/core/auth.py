"""
Authentication Module

Configures the Kubernetes client from an explicit API URL and token, the
local kubeconfig, or the in-cluster service account.
"""

import logging
from typing import Optional

from decouple import config as env_config
from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from .exceptions import AuthenticationError
from .utils import disable_ssl_warnings, mask_sensitive_info, validate_url

logger = logging.getLogger(__name__)


class KubernetesAuth:
    """Handles Kubernetes authentication and context discovery"""

    def __init__(self, skip_tls: bool = False, context: Optional[str] = None):
        """
        Initialize Kubernetes authentication handler

        Args:
            skip_tls: Whether to skip TLS verification for API requests
            context: kubeconfig context to use instead of the current one
        """
        self.skip_tls = skip_tls
        self.context = context
        self.api_client: Optional[client.ApiClient] = None

    def configure_auth(self, api_url: Optional[str] = None, token: Optional[str] = None) -> client.ApiClient:
        """
        Configure authentication with provided URL and token, or discover from context

        Args:
            api_url: Kubernetes API server URL (falls back to KUBE_API_URL)
            token: Bearer token (falls back to KUBE_TOKEN)

        Returns:
            client.ApiClient: Configured API client

        Raises:
            AuthenticationError: If no usable configuration is found
        """
        api_url = api_url or env_config('KUBE_API_URL', default=None)
        token = token or env_config('KUBE_TOKEN', default=None)

        if api_url and token:
            validate_url(api_url)
            self.api_client = self._configure_with_token(api_url, token)
        else:
            self.api_client = self._discover_from_context()

        return self.api_client

    def _configure_with_token(self, api_url: str, token: str) -> client.ApiClient:
        configuration = client.Configuration()
        configuration.host = api_url
        configuration.api_key = {"authorization": token}
        configuration.api_key_prefix = {"authorization": "Bearer"}

        if self.skip_tls:
            configuration.verify_ssl = False
            configuration.ssl_ca_cert = None
            disable_ssl_warnings()

        logger.debug(f"Configured Kubernetes client for {mask_sensitive_info(api_url)}")
        return client.ApiClient(configuration)

    def _discover_from_context(self) -> client.ApiClient:
        """
        Discover authentication from kubeconfig or in-cluster config

        Raises:
            AuthenticationError: If neither source is usable
        """
        configuration = client.Configuration()
        try:
            config.load_kube_config(context=self.context, client_configuration=configuration)
            logger.debug("Loaded kubeconfig" + (f" (context {self.context})" if self.context else ""))
        except (ConfigException, OSError) as kubeconfig_error:
            if self.context:
                raise AuthenticationError(
                    f"Failed to load kubeconfig context '{self.context}': {kubeconfig_error}"
                )
            logger.debug(f"Failed to load kubeconfig: {kubeconfig_error}")
            try:
                config.load_incluster_config(client_configuration=configuration)
                logger.debug("Loaded in-cluster config")
            except ConfigException as incluster_error:
                raise AuthenticationError(
                    "No Kubernetes configuration found. Provide a kubeconfig, run inside the "
                    "cluster, or pass --api-url and --token.\n"
                    f"kubeconfig: {kubeconfig_error}\nin-cluster: {incluster_error}"
                )

        if self.skip_tls:
            configuration.verify_ssl = False
            configuration.ssl_ca_cert = None
            disable_ssl_warnings()

        return client.ApiClient(configuration)
