"""
Namespace Ensurer

Idempotent check-then-create of the target namespace.
"""

import logging

from ..core.logging_utils import log_step
from ..core.protocols import ClusterProvider

logger = logging.getLogger(__name__)


def ensure_namespace(cluster: ClusterProvider, namespace: str) -> bool:
    """
    Create the namespace unless it already exists

    A namespace created concurrently between the check and the create
    surfaces as a ClusterError from the create call.

    Args:
        cluster: Cluster provider
        namespace: Namespace name

    Returns:
        bool: True if the namespace was created by this call
    """
    log_step(logger, f"Ensuring namespace '{namespace}' exists")

    if cluster.namespace_exists(namespace):
        logger.info(f"Namespace '{namespace}' already exists")
        return False

    cluster.create_namespace(namespace)
    logger.info(f"Created namespace '{namespace}'")
    return True
