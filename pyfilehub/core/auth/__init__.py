"""
Authentication for PyFileHub.

Credential storage (registration, password checks) and stateless session
tokens.
"""

from pyfilehub.core.auth.credentials import CredentialStore
from pyfilehub.core.auth.sessions import SessionAuthenticator

__all__ = ['CredentialStore', 'SessionAuthenticator']
