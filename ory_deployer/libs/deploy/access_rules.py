"""
Access-Rule Applier

Installs the Oathkeeper Maester rule CRD and applies the externally authored
rule manifests to it.
"""

import logging
from pathlib import Path

from ..core.constants import FileConstants
from ..core.logging_utils import log_step
from ..core.protocols import ClusterProvider

logger = logging.getLogger(__name__)


def ensure_rules_crd(cluster: ClusterProvider, crd_name: str, crd_url: str) -> bool:
    """
    Install the rule CRD unless the cluster already has it

    Returns:
        bool: True if the CRD was installed by this call
    """
    log_step(logger, "Installing Oathkeeper Maester CRDs")

    if cluster.crd_exists(crd_name):
        logger.info("Oathkeeper CRDs already installed")
        return False

    cluster.apply_manifest_url(crd_url)
    logger.info("Oathkeeper CRDs installed")
    return True


def apply_access_rules(cluster: ClusterProvider, rules_dir: Path, namespace: str) -> bool:
    """
    Apply every rule manifest in the directory as a single batch

    A missing or empty directory is not an error: the gateway is deployed
    without rules and a warning says where to put them.

    Args:
        cluster: Cluster provider
        rules_dir: Directory holding rule manifests
        namespace: Namespace for rules that do not set one

    Returns:
        bool: True if rules were applied
    """
    log_step(logger, "Applying Oathkeeper access rules")
    rules_dir = Path(rules_dir)

    if not rules_dir.is_dir():
        logger.warning(f"Rules directory not found: {rules_dir}")
        logger.warning("Skipping access rules application")
        logger.warning(f"Create rules in: {rules_dir}")
        return False

    if not any(p.is_file() for p in rules_dir.glob(FileConstants.RULE_FILE_PATTERN)):
        logger.warning(f"No rule files found in {rules_dir}")
        logger.warning("Skipping access rules application")
        return False

    cluster.apply_manifests(rules_dir, namespace)
    logger.info("Access rules applied")
    return True
