"""
Login Flow

Identity service login smoke test.
"""

from .flow import LoginFlow, LoginFlowTester, LoginResult, extract_flow, extract_session_token

__all__ = [
    'LoginFlow',
    'LoginFlowTester',
    'LoginResult',
    'extract_flow',
    'extract_session_token',
]
