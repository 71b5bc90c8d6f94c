"""
Login Flow Tester

Smoke test for the identity service: starts an API login flow, submits
password credentials and extracts the session token from the response.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlencode

import requests

from ..core.config import LoginConfig
from ..core.constants import LoginConstants, NetworkConstants
from ..core.exceptions import LoginFlowError
from ..core.logging_utils import log_step
from ..core.utils import disable_ssl_warnings, mask_sensitive_info

logger = logging.getLogger(__name__)

SESSION_TOKEN_PATTERN = re.compile(rf"{LoginConstants.SESSION_COOKIE_NAME}=[^;]*")


@dataclass
class LoginFlow:
    flow_id: str
    csrf_token: str
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LoginResult:
    status_code: int
    session_token: str
    body: str = ""


def extract_flow(descriptor: Dict[str, Any]) -> LoginFlow:
    """
    Pull the flow id and CSRF token out of a login flow descriptor

    Raises:
        LoginFlowError: If the id, the node list or the CSRF node is missing or malformed
    """
    flow_id = descriptor.get("id")
    if not flow_id:
        raise LoginFlowError("Login flow response has no flow id")

    ui = descriptor.get("ui")
    nodes = ui.get("nodes") if isinstance(ui, dict) else None
    if not isinstance(nodes, list):
        raise LoginFlowError(f"Login flow {flow_id} has no ui.nodes")

    for index, node in enumerate(nodes):
        if not isinstance(node, dict):
            raise LoginFlowError(f"Login flow {flow_id} has a malformed ui node at index {index}")
        attributes = node.get("attributes")
        if not isinstance(attributes, dict):
            continue
        if attributes.get("name") == LoginConstants.CSRF_NODE_NAME:
            # API flows may carry an empty token
            return LoginFlow(flow_id=flow_id, csrf_token=attributes.get("value") or "", raw=descriptor)

    raise LoginFlowError(f"Login flow {flow_id} has no {LoginConstants.CSRF_NODE_NAME} node")


def extract_session_token(headers: Iterable[str]) -> Optional[str]:
    """
    Find ``ory_session_token=<value>`` in Set-Cookie header values

    Args:
        headers: Set-Cookie header values in the order received

    Returns:
        The first ``name=value`` match, or None
    """
    for header in headers:
        match = SESSION_TOKEN_PATTERN.search(header or "")
        if match:
            return match.group(0)
    return None


class LoginFlowTester:
    """Runs the identity login flow end to end"""

    def __init__(self, config: LoginConfig, session: Optional[requests.Session] = None):
        """
        Initialize login flow tester

        Args:
            config: Login inputs
            session: HTTP session to use (a new one is created if None)
        """
        self.config = config
        self.base_url = config.base_url.rstrip('/')
        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': NetworkConstants.CONTENT_TYPE_JSON,
            'User-Agent': NetworkConstants.USER_AGENT,
        })

        if not config.verify_tls:
            self.session.verify = False
            disable_ssl_warnings()

    def _log_response(self, label: str, response: requests.Response) -> None:
        body = mask_sensitive_info(response.text or "", [self.config.password])
        logger.info(f"{label} response (HTTP {response.status_code}):")
        for line in body.splitlines() or [""]:
            logger.info(f"  {line}")

    def fetch_flow(self) -> LoginFlow:
        """
        Start an API login flow

        Raises:
            LoginFlowError: On transport errors, non-2xx status or a malformed descriptor
        """
        url = f"{self.base_url}{LoginConstants.LOGIN_FLOW_PATH}"
        logger.debug(f"GET {url}")
        try:
            response = self.session.get(url, timeout=self.config.timeout)
        except requests.RequestException as e:
            raise LoginFlowError(f"Failed to start login flow at {url}: {e}")

        self._log_response("Login flow", response)
        if not response.ok:
            raise LoginFlowError(f"Login flow request failed with HTTP {response.status_code}")

        try:
            descriptor = response.json()
        except ValueError as e:
            raise LoginFlowError(f"Login flow response is not JSON: {e}")
        if not isinstance(descriptor, dict):
            raise LoginFlowError("Login flow response is not a JSON object")

        flow = extract_flow(descriptor)
        logger.info(f"Flow ID: {flow.flow_id}")
        return flow

    def build_payload(self, flow: LoginFlow) -> Dict[str, str]:
        return {
            "method": LoginConstants.PASSWORD_METHOD,
            "csrf_token": flow.csrf_token,
            "identifier": self.config.identifier,
            "password": self.config.password,
        }

    def submit(self, flow: LoginFlow) -> LoginResult:
        """
        Submit password credentials to the flow

        The response status is not checked; a missing session cookie is the
        reported failure.

        Raises:
            LoginFlowError: On transport errors or if no session token is returned
        """
        url = (f"{self.base_url}{LoginConstants.LOGIN_SUBMIT_PATH}"
               f"?{urlencode({LoginConstants.FLOW_QUERY_PARAM: flow.flow_id})}")
        payload = self.build_payload(flow)
        logger.debug(f"POST {url} "
                     f"{mask_sensitive_info(json.dumps(payload), [self.config.password])}")

        try:
            response = self.session.post(
                url,
                json=payload,
                headers={'Content-Type': NetworkConstants.CONTENT_TYPE_JSON},
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise LoginFlowError(f"Failed to submit login flow {flow.flow_id}: {e}")

        self._log_response("Login", response)

        cookie = response.headers.get(LoginConstants.SET_COOKIE_HEADER)
        token = extract_session_token([cookie] if cookie else [])
        if not token:
            raise LoginFlowError(
                f"No {LoginConstants.SESSION_COOKIE_NAME} in login response (HTTP {response.status_code})"
            )

        logger.info(f"Session token: {token}")
        return LoginResult(status_code=response.status_code, session_token=token, body=response.text or "")

    def run(self) -> LoginResult:
        log_step(logger, f"Testing login flow against {self.base_url}")
        flow = self.fetch_flow()
        result = self.submit(flow)
        logger.info("Login flow succeeded")
        return result
