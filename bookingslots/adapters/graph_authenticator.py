"""
Microsoft Graph application authentication using MSAL (client credentials).

The booking service reads calendars of its own tenant's users, so it runs
with an application token instead of a per-user consent flow.
"""

from __future__ import annotations

import logging
import threading

import msal

from ..domain.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class GraphAuthenticator:
    """
    Acquires app-only tokens for Microsoft Graph.

    MSAL keeps the token in its in-memory cache and only contacts the
    identity platform again when the cached token is about to expire.
    """

    SCOPES = ["https://graph.microsoft.com/.default"]

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        client_secret: str,
        authority_url: str | None = None,
    ):
        """
        Initialize the authenticator.

        Args:
            client_id: Azure AD application (client) ID
            tenant_id: Azure AD tenant ID
            client_secret: Application secret
            authority_url: Optional custom authority URL
        """
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.authority = authority_url or f"https://login.microsoftonline.com/{tenant_id}"
        self._lock = threading.Lock()

        self.app = msal.ConfidentialClientApplication(
            client_id=self.client_id,
            client_credential=client_secret,
            authority=self.authority,
        )

    def get_access_token(self) -> str:
        """
        Return a valid access token, from cache when possible.

        Raises:
            AuthenticationError: If the identity platform refuses the credentials
        """
        with self._lock:
            result = self.app.acquire_token_for_client(scopes=self.SCOPES)

        if not result or "access_token" not in result:
            error = (result or {}).get("error_description", "Unknown error")
            raise AuthenticationError(f"Microsoft Graph authentication failed: {error}")

        return result["access_token"]

    __call__ = get_access_token
