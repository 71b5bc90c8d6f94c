"""
Tests for the identity login flow tester
"""

import json
from unittest.mock import Mock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from ory_deployer.libs.core.config import LoginConfig
from ory_deployer.libs.core.exceptions import LoginFlowError
from ory_deployer.libs.login.flow import LoginFlowTester, extract_flow, extract_session_token

FLOW = {
    "id": "f1",
    "ui": {
        "nodes": [
            {"attributes": {"name": "identifier", "value": ""}},
            {"attributes": {"name": "csrf_token", "value": "tok"}},
        ]
    },
}


def make_response(status_code=200, body=None, headers=None):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = json.dumps(body) if body is not None else ""
    response.json.return_value = body
    response.headers = CaseInsensitiveDict(headers or {})
    return response


def make_tester(session, base_url="https://kratos.example.com"):
    config = LoginConfig(base_url=base_url, identifier="a@b.c", password="hunter2")
    return LoginFlowTester(config, session=session)


def make_session(flow_response, submit_response):
    session = Mock()
    session.headers = {}
    session.get.return_value = flow_response
    session.post.return_value = submit_response
    return session


class TestExtractFlow:
    """Flow descriptor parsing"""

    def test_extracts_id_and_csrf(self):
        flow = extract_flow(FLOW)

        assert flow.flow_id == "f1"
        assert flow.csrf_token == "tok"

    def test_empty_csrf_value_is_accepted(self):
        descriptor = {"id": "f2", "ui": {"nodes": [{"attributes": {"name": "csrf_token", "value": ""}}]}}

        assert extract_flow(descriptor).csrf_token == ""

    def test_missing_id(self):
        with pytest.raises(LoginFlowError):
            extract_flow({"ui": {"nodes": []}})

    def test_missing_nodes(self):
        with pytest.raises(LoginFlowError):
            extract_flow({"id": "f1", "ui": {}})

    @pytest.mark.parametrize("ui", [None, "nodes", ["csrf_token"]])
    def test_non_object_ui(self, ui):
        with pytest.raises(LoginFlowError):
            extract_flow({"id": "f1", "ui": ui})

    def test_null_node_is_a_flow_error(self):
        descriptor = {"id": "abc", "ui": {"nodes": [None, {"attributes": {"name": "csrf_token", "value": "t"}}]}}

        with pytest.raises(LoginFlowError) as exc_info:
            extract_flow(descriptor)

        assert "index 0" in str(exc_info.value)

    def test_node_without_attributes_is_skipped(self):
        nodes = [{"type": "script"}, {"attributes": {"name": "csrf_token", "value": "t"}}]
        descriptor = {"id": "f1", "ui": {"nodes": nodes}}

        assert extract_flow(descriptor).csrf_token == "t"

    def test_missing_csrf_node(self):
        descriptor = {"id": "f1", "ui": {"nodes": [{"attributes": {"name": "identifier"}}]}}

        with pytest.raises(LoginFlowError):
            extract_flow(descriptor)


class TestExtractSessionToken:
    """Cookie scraping"""

    def test_token_with_attributes(self):
        headers = ["ory_session_token=abc123; Path=/; HttpOnly"]

        assert extract_session_token(headers) == "ory_session_token=abc123"

    def test_no_cookie(self):
        assert extract_session_token(["csrf_token=xyz; Path=/"]) is None
        assert extract_session_token([]) is None

    def test_first_matching_header_wins(self):
        headers = ["csrf_token=xyz", "ory_session_token=first", "ory_session_token=second"]

        assert extract_session_token(headers) == "ory_session_token=first"


class TestLoginFlowTester:
    """End-to-end flow against a mocked session"""

    def test_successful_login(self):
        # Arrange
        session = make_session(
            make_response(200, FLOW),
            make_response(200, {"session": {"id": "s1"}},
                          {"set-cookie": "ory_session_token=abc; Path=/; HttpOnly"}),
        )
        tester = make_tester(session)

        # Act
        result = tester.run()

        # Assert
        assert result.session_token == "ory_session_token=abc"
        assert result.status_code == 200
        session.get.assert_called_once()
        assert session.get.call_args[0][0] == "https://kratos.example.com/self-service/login/api"

    def test_submit_request_shape(self):
        """POST to the submit path with the flow id and password body"""
        session = make_session(
            make_response(200, FLOW),
            make_response(200, {}, {"Set-Cookie": "ory_session_token=abc"}),
        )
        tester = make_tester(session, base_url="https://kratos.example.com/")

        tester.run()

        args, kwargs = session.post.call_args
        assert args[0] == "https://kratos.example.com/self-service/login?flow=f1"
        assert kwargs["json"] == {
            "method": "password",
            "csrf_token": "tok",
            "identifier": "a@b.c",
            "password": "hunter2",
        }

    def test_flow_id_and_token_reach_the_submit_request(self):
        descriptor = {"id": "abc", "ui": {"nodes": [{"attributes": {"name": "csrf_token", "value": "tok1"}}]}}
        session = make_session(
            make_response(200, descriptor),
            make_response(200, {}, {"Set-Cookie": "ory_session_token=XYZ; Path=/; HttpOnly"}),
        )

        result = make_tester(session).run()

        args, kwargs = session.post.call_args
        assert "flow=abc" in args[0]
        assert kwargs["json"] == {"method": "password", "csrf_token": "tok1",
                                  "identifier": "a@b.c", "password": "hunter2"}
        assert result.session_token == "ory_session_token=XYZ"

    def test_non_2xx_flow_fetch_fails(self):
        session = make_session(make_response(503, {"error": "unavailable"}), None)

        with pytest.raises(LoginFlowError):
            make_tester(session).run()

        session.post.assert_not_called()

    def test_transport_error_fails(self):
        session = make_session(None, None)
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(LoginFlowError):
            make_tester(session).fetch_flow()

    def test_missing_session_cookie_fails(self):
        """A rejected password surfaces as a missing token"""
        session = make_session(
            make_response(200, FLOW),
            make_response(400, {"ui": {"messages": [{"text": "invalid credentials"}]}}),
        )

        with pytest.raises(LoginFlowError) as exc_info:
            make_tester(session).run()

        assert "HTTP 400" in str(exc_info.value)

    def test_password_is_not_logged(self, caplog):
        echoed = dict(FLOW, password="hunter2")
        session = make_session(
            make_response(200, echoed),
            make_response(200, {}, {"Set-Cookie": "ory_session_token=abc"}),
        )

        with caplog.at_level("DEBUG"):
            make_tester(session).run()

        assert "hunter2" not in caplog.text

    def test_skip_tls_disables_verification(self):
        session = make_session(None, None)
        config = LoginConfig(base_url="https://kratos.example.com", identifier="a", password="b",
                             verify_tls=False)

        LoginFlowTester(config, session=session)

        assert session.verify is False
