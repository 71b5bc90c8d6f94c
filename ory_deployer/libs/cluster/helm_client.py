"""
Helm Client

PackageManager implementation that drives the helm binary.
"""

import logging
import shutil
import subprocess
from typing import List, Optional

from ..core.constants import ErrorMessages, HelmConstants
from ..core.data_models import ReleaseSpec
from ..core.exceptions import HelmError
from ..core.utils import mask_sensitive_info

logger = logging.getLogger(__name__)


def escape_set_value(value: str) -> str:
    """Escape characters helm --set treats as separators"""
    return value.replace("\\", "\\\\").replace(",", "\\,")


def build_install_command(release: ReleaseSpec, helm_binary: str = HelmConstants.HELM_BINARY) -> List[str]:
    """
    Build the ``helm upgrade --install`` command line for a release

    Args:
        release: Release to install or upgrade
        helm_binary: Path to the helm binary

    Returns:
        List of command arguments
    """
    cmd = [helm_binary, "upgrade", "--install", release.name, release.chart,
           "--namespace", release.namespace]

    for values_file in release.values_files:
        cmd.extend(["-f", str(values_file)])

    for key, value in release.set_values:
        cmd.extend(["--set", f"{key}={escape_set_value(value)}"])

    for key, value in release.set_string_values:
        cmd.extend(["--set-string", f"{key}={escape_set_value(value)}"])

    if release.wait:
        cmd.extend(["--wait", f"--timeout={release.timeout}"])

    if release.skip_crds:
        cmd.append("--skip-crds")

    return cmd


class HelmClient:
    """Low-level client for helm binary operations"""

    def __init__(self, helm_binary: Optional[str] = None, kube_context: Optional[str] = None):
        """
        Initialize helm client

        Args:
            helm_binary: Explicit path to helm (defaults to the one on PATH)
            kube_context: kubeconfig context passed to every command
        """
        self.kube_context = kube_context
        self._helm_binary = helm_binary

    def _find_helm_binary(self) -> str:
        """
        Find helm binary in system PATH

        Raises:
            HelmError: If helm binary not found
        """
        if self._helm_binary:
            return self._helm_binary

        path = shutil.which(HelmConstants.HELM_BINARY)
        if not path:
            raise HelmError(ErrorMessages.HELM_NOT_FOUND)

        logger.debug(f"Found helm binary at: {path}")
        self._helm_binary = path
        return path

    def _run(self, cmd: List[str], secret_values: Optional[List[str]] = None) -> str:
        """
        Run a helm command, raising HelmError on a non-zero exit

        Args:
            cmd: Command arguments, helm binary first
            secret_values: Values to mask when the command is logged

        Returns:
            str: Command stdout
        """
        if self.kube_context:
            cmd = cmd + ["--kube-context", self.kube_context]

        printable = mask_sensitive_info(' '.join(cmd), secret_values)
        logger.debug(f"Running: {printable}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise HelmError(f"Failed to run helm: {e}", command=cmd)

        if result.returncode != 0:
            stderr = mask_sensitive_info(result.stderr.strip(), secret_values)
            raise HelmError(
                f"helm exited with code {result.returncode}: {stderr or 'no error output'}",
                command=cmd, returncode=result.returncode, stderr=stderr,
            )

        if result.stdout.strip():
            logger.debug(mask_sensitive_info(result.stdout.strip(), secret_values))
        return result.stdout

    def add_repository(self, name: str, url: str) -> None:
        helm = self._find_helm_binary()
        self._run([helm, "repo", "add", name, url, "--force-update"])

    def update_repositories(self) -> None:
        helm = self._find_helm_binary()
        self._run([helm, "repo", "update"])

    def install_or_upgrade(self, release: ReleaseSpec) -> None:
        """
        Install the release, or upgrade it in place if it exists

        Blocks until the release reports ready or its timeout elapses.

        Raises:
            HelmError: If helm fails; nothing is rolled back
        """
        cmd = build_install_command(release, self._find_helm_binary())
        self._run(cmd, release.secret_values())
