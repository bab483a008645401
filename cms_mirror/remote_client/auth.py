"""Authentication module for loading remote store credentials.

Credentials are read from environment variables, optionally populated from a
.env file using python-dotenv. The token is never cached or logged.
"""

import os
from typing import NamedTuple, Optional

from dotenv import load_dotenv

from .errors import InvalidCredentialsError


class Credentials(NamedTuple):
    """Remote store API credentials."""
    endpoint: str
    token: str


class Authenticator:
    """Loads and validates remote store credentials from environment variables.

    Environment variables:
        CMS_MIRROR_TOKEN: API token (required)
        CMS_MIRROR_ENDPOINT: Overrides the endpoint from the workspace config

    Example:
        >>> auth = Authenticator()
        >>> creds = auth.get_credentials("https://cms.example.com/api")
        >>> print(f"Connecting to {creds.endpoint}")
    """

    TOKEN_VAR = 'CMS_MIRROR_TOKEN'
    ENDPOINT_VAR = 'CMS_MIRROR_ENDPOINT'

    def __init__(self, dotenv_path: Optional[str] = None):
        """Load environment variables from a .env file.

        Args:
            dotenv_path: Optional explicit .env path (default: search upwards from cwd)
        """
        load_dotenv(dotenv_path)

    def get_credentials(self, configured_endpoint: Optional[str] = None) -> Credentials:
        """Get remote store credentials.

        Args:
            configured_endpoint: Endpoint from the workspace config, used when
                CMS_MIRROR_ENDPOINT is not set

        Returns:
            Credentials with endpoint and token

        Raises:
            InvalidCredentialsError: If the token or endpoint is missing
        """
        endpoint = os.getenv(self.ENDPOINT_VAR) or configured_endpoint
        token = os.getenv(self.TOKEN_VAR)

        if not endpoint:
            raise InvalidCredentialsError("unknown", f"{self.ENDPOINT_VAR} is not set")
        if not token:
            raise InvalidCredentialsError(endpoint, f"{self.TOKEN_VAR} is not set")

        return Credentials(endpoint=endpoint.rstrip('/'), token=token)
