"""
Kubernetes Client

ClusterProvider implementation backed by the official kubernetes client.
Manifests are applied through the dynamic client so custom resources such
as Oathkeeper rules need no generated API classes.
"""

import base64
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import requests
import yaml
from kubernetes import client, dynamic
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import DynamicApiError, NotFoundError, ResourceNotFoundError

from ..core.constants import ErrorMessages, FileConstants, KubernetesConstants, NetworkConstants
from ..core.data_models import WorkloadStatus
from ..core.exceptions import ClusterError, MissingFileError, PreconditionError
from ..core.utils import handle_api_error

logger = logging.getLogger(__name__)

CRD_KIND = "CustomResourceDefinition"
CRD_ESTABLISHED_TIMEOUT = 60
CRD_POLL_INTERVAL = 1


class KubernetesCluster:
    """Cluster operations used by the deployment steps"""

    def __init__(self, api_client: client.ApiClient, verify_tls: bool = True):
        """
        Initialize cluster client

        Args:
            api_client: Configured Kubernetes API client
            verify_tls: Verify TLS when downloading manifests by URL
        """
        self.api_client = api_client
        self.verify_tls = verify_tls
        self.core_api = client.CoreV1Api(api_client)
        self.apps_api = client.AppsV1Api(api_client)
        self.extensions_api = client.ApiextensionsV1Api(api_client)
        self._dynamic_client = None

    @property
    def dynamic_client(self) -> dynamic.DynamicClient:
        # Discovery runs on construction, so defer it until a manifest is applied
        if self._dynamic_client is None:
            try:
                self._dynamic_client = dynamic.DynamicClient(self.api_client)
            except ApiException as e:
                handle_api_error(e, "Failed to discover cluster API resources")
        return self._dynamic_client

    # Namespaces

    def namespace_exists(self, name: str) -> bool:
        try:
            self.core_api.read_namespace(name=name)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            handle_api_error(e, f"Failed to read namespace '{name}'")

    def create_namespace(self, name: str) -> None:
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name))
        try:
            self.core_api.create_namespace(body=body)
        except ApiException as e:
            handle_api_error(e, f"Failed to create namespace '{name}'")

    # Workloads

    def get_workload(self, name: str, namespace: str,
                     kind: str = KubernetesConstants.WorkloadKind.STATEFULSET.value) -> Optional[WorkloadStatus]:
        """
        Look up a workload and the phases of the pods it selects

        Returns:
            WorkloadStatus, or None if the workload does not exist
        """
        readers = {
            KubernetesConstants.WorkloadKind.STATEFULSET.value: self.apps_api.read_namespaced_stateful_set,
            KubernetesConstants.WorkloadKind.DEPLOYMENT.value: self.apps_api.read_namespaced_deployment,
        }
        if kind not in readers:
            raise ClusterError(f"Unsupported workload kind: {kind}")

        try:
            workload = readers[kind](name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            handle_api_error(e, f"Failed to read {kind} '{name}' in namespace '{namespace}'")

        status = WorkloadStatus(name=name, namespace=namespace, kind=kind)
        selector = workload.spec.selector.match_labels if workload.spec.selector else None
        if not selector:
            logger.debug(f"{kind} '{name}' has no label selector, cannot inspect its pods")
            return status

        label_selector = ','.join(f"{k}={v}" for k, v in selector.items())
        try:
            pods = self.core_api.list_namespaced_pod(namespace=namespace, label_selector=label_selector)
        except ApiException as e:
            handle_api_error(e, f"Failed to list pods of {kind} '{name}'")

        status.pod_phases = [pod.status.phase for pod in pods.items if pod.status]
        return status

    # Secrets

    def secret_exists(self, name: str, namespace: str) -> bool:
        try:
            self.core_api.read_namespaced_secret(name=name, namespace=namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            handle_api_error(e, f"Failed to read secret '{name}' in namespace '{namespace}'")

    def read_secret(self, name: str, namespace: str, key: str) -> str:
        """
        Read and base64-decode one key of a secret

        Raises:
            PreconditionError: If the secret or the key does not exist
        """
        try:
            secret = self.core_api.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                raise PreconditionError(
                    ErrorMessages.MISSING_SECRET.format(secret=name, namespace=namespace),
                    resource=name, namespace=namespace,
                )
            handle_api_error(e, f"Failed to read secret '{name}' in namespace '{namespace}'")

        data = secret.data or {}
        if key not in data:
            raise PreconditionError(
                ErrorMessages.MISSING_SECRET_KEY.format(secret=name, namespace=namespace, key=key),
                resource=name, namespace=namespace,
            )
        return base64.b64decode(data[key]).decode("utf-8")

    def apply_secret(self, name: str, namespace: str, data: Dict[str, str]) -> None:
        """Create an opaque secret, or replace its data if it already exists"""
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            type=KubernetesConstants.SECRET_TYPE_OPAQUE,
            string_data=data,
        )
        try:
            self.core_api.replace_namespaced_secret(name=name, namespace=namespace, body=body)
            logger.debug(f"Replaced secret {namespace}/{name}")
        except ApiException as e:
            if e.status != 404:
                handle_api_error(e, f"Failed to update secret '{name}' in namespace '{namespace}'")
            try:
                self.core_api.create_namespaced_secret(namespace=namespace, body=body)
                logger.debug(f"Created secret {namespace}/{name}")
            except ApiException as create_error:
                handle_api_error(create_error, f"Failed to create secret '{name}' in namespace '{namespace}'")

    # Custom resource definitions and manifests

    def crd_exists(self, name: str) -> bool:
        try:
            self.extensions_api.read_custom_resource_definition(name=name)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            handle_api_error(e, f"Failed to read CustomResourceDefinition '{name}'")

    def apply_manifest_url(self, url: str) -> None:
        """Download a manifest and apply every document in it"""
        try:
            response = requests.get(
                url,
                timeout=NetworkConstants.DEFAULT_TIMEOUT,
                verify=self.verify_tls,
                headers={"User-Agent": NetworkConstants.USER_AGENT},
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ClusterError(f"Failed to download manifest {url}: {e}")

        documents = self._load_documents(response.text, url)
        self._apply_documents(documents)

    def apply_manifests(self, path: Union[str, Path], namespace: Optional[str] = None) -> None:
        """
        Apply a manifest file, or every manifest in a directory in lexical order

        Args:
            path: Manifest file or directory
            namespace: Namespace for namespaced objects that do not set one
        """
        path = Path(path)
        if path.is_dir():
            files = sorted(
                p for p in path.iterdir()
                if p.is_file() and p.suffix in FileConstants.MANIFEST_EXTENSIONS
            )
        elif path.is_file():
            files = [path]
        else:
            raise MissingFileError(f"Manifest path not found: {path}", str(path))

        documents = []
        for manifest_file in files:
            documents.extend(self._load_documents(manifest_file.read_text(), str(manifest_file)))

        self._apply_documents(documents, namespace)

    @staticmethod
    def _load_documents(text: str, source: str) -> List[Dict[str, Any]]:
        try:
            documents = [doc for doc in yaml.safe_load_all(text) if doc]
        except yaml.YAMLError as e:
            raise ClusterError(f"Invalid manifest {source}: {e}")

        expanded = []
        for doc in documents:
            if not isinstance(doc, dict):
                raise ClusterError(f"Invalid manifest {source}: expected a mapping")
            if doc.get("kind", "").endswith("List") and "items" in doc:
                expanded.extend(doc["items"] or [])
            else:
                expanded.append(doc)
        return expanded

    def _apply_documents(self, documents: Iterable[Dict[str, Any]], namespace: Optional[str] = None) -> None:
        crd_names = []
        for doc in documents:
            self._apply_document(doc, namespace)
            if doc.get("kind") == CRD_KIND:
                crd_names.append(doc["metadata"]["name"])

        for name in crd_names:
            self._wait_for_crd_established(name)

    def _apply_document(self, doc: Dict[str, Any], namespace: Optional[str]) -> None:
        """Create the object, or replace it at its current resourceVersion"""
        api_version = doc.get("apiVersion")
        kind = doc.get("kind")
        metadata = doc.setdefault("metadata", {})
        name = metadata.get("name")
        if not api_version or not kind or not name:
            raise ClusterError(f"Manifest is missing apiVersion, kind or metadata.name: {doc}")

        try:
            resource = self.dynamic_client.resources.get(api_version=api_version, kind=kind)
        except ResourceNotFoundError:
            raise ClusterError(f"Cluster does not serve {kind} ({api_version}); is its CRD installed?")

        target_namespace = None
        if resource.namespaced:
            target_namespace = metadata.get("namespace") or namespace or KubernetesConstants.DEFAULT_NAMESPACE
            metadata["namespace"] = target_namespace

        label = f"{kind.lower()}/{name}"
        try:
            try:
                existing = self.dynamic_client.get(resource, name=name, namespace=target_namespace)
            except NotFoundError:
                self.dynamic_client.create(resource, body=doc, namespace=target_namespace)
                logger.info(f"{label} created")
                return

            metadata["resourceVersion"] = existing.metadata.resourceVersion
            self.dynamic_client.replace(resource, body=doc, name=name, namespace=target_namespace)
            logger.info(f"{label} configured")
        except DynamicApiError as e:
            handle_api_error(e, f"Failed to apply {label}")

    def _wait_for_crd_established(self, name: str) -> None:
        deadline = time.monotonic() + CRD_ESTABLISHED_TIMEOUT
        while True:
            try:
                crd = self.extensions_api.read_custom_resource_definition(name=name)
            except ApiException as e:
                handle_api_error(e, f"Failed to read CustomResourceDefinition '{name}'")

            conditions = (crd.status.conditions or []) if crd.status else []
            if any(c.type == "Established" and c.status == "True" for c in conditions):
                logger.debug(f"CustomResourceDefinition '{name}' established")
                return

            if time.monotonic() >= deadline:
                raise ClusterError(
                    f"CustomResourceDefinition '{name}' not established after {CRD_ESTABLISHED_TIMEOUT}s"
                )
            time.sleep(CRD_POLL_INTERVAL)
