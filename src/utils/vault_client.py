"""
HashiCorp Vault client for fetching environment credentials

Reads the service principal of the source and target environments from a
KV v2 secrets engine. Each environment is one secret holding ``url``,
``tenant_id``, ``client_id`` and ``client_secret``:

    vault kv put secret/refsync/source url=https://contoso-dev.crm.dynamics.com \\
        tenant_id=... client_id=... client_secret=...
"""

import logging
import os
import re
from typing import Any, Dict, Optional

import requests

from utils.retry import retry_remote_operation

logger = logging.getLogger(__name__)

SERVICE_ENVIRONMENTS = ("source", "target")
REQUIRED_SERVICE_FIELDS = ("url", "tenant_id", "client_id", "client_secret")

_SAFE_PATH = re.compile(r"^[a-zA-Z0-9_-]+(/[a-zA-Z0-9_-]+)*$")


class VaultClient:
    """
    HashiCorp Vault client for secrets management

    Example:
        >>> client = VaultClient()  # VAULT_ADDR / VAULT_TOKEN from environment
        >>> client.get_service_credentials("source")["url"]
        'https://contoso-dev.crm.dynamics.com'
    """

    def __init__(
        self,
        vault_addr: Optional[str] = None,
        vault_token: Optional[str] = None,
        namespace: Optional[str] = None,
        mount_point: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize Vault client

        Args:
            vault_addr: Vault server address (default: VAULT_ADDR env var)
            vault_token: Vault authentication token (default: VAULT_TOKEN env var)
            namespace: Vault namespace (optional, for Vault Enterprise)
            mount_point: KV v2 mount (default: VAULT_MOUNT env var, else "secret")
            session: requests session to use (default: a new session)
            timeout: Per-request timeout in seconds

        Raises:
            ValueError: If vault_addr or vault_token are not provided
        """
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.mount_point = (mount_point or os.getenv("VAULT_MOUNT") or "secret").strip("/")
        self.timeout = timeout

        if not self.vault_addr:
            raise ValueError(
                "Vault address not provided. Set VAULT_ADDR environment variable "
                "or pass vault_addr parameter."
            )
        if not self.vault_token:
            raise ValueError(
                "Vault token not provided. Set VAULT_TOKEN environment variable "
                "or pass vault_token parameter."
            )

        self.vault_addr = self.vault_addr.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers["X-Vault-Token"] = self.vault_token
        if namespace:
            self.session.headers["X-Vault-Namespace"] = namespace

        logger.info(f"Initialized Vault client for {self.vault_addr}")

    @retry_remote_operation(max_retries=2)
    def _read(self, url: str) -> requests.Response:
        response = self.session.get(url, timeout=self.timeout)
        if response.status_code != 404:
            response.raise_for_status()
        return response

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Read the latest version of a KV v2 secret

        Args:
            path: Secret path below the mount (e.g. "refsync/source")

        Returns:
            Dictionary containing secret data

        Raises:
            ValueError: If the path is invalid or the secret is missing or empty
            requests.RequestException: If the Vault request fails
        """
        if not path or not _SAFE_PATH.match(path):
            raise ValueError(
                f"Invalid secret path: {path!r}. Only alphanumeric characters, "
                "underscores and hyphens separated by slashes are allowed."
            )

        url = f"{self.vault_addr}/v1/{self.mount_point}/data/{path}"
        logger.debug(f"Fetching secret from: {url}")

        response = self._read(url)
        if response.status_code == 404:
            raise ValueError(f"Secret not found at path: {self.mount_point}/{path}")

        secret_data = response.json().get("data", {}).get("data", {})
        if not secret_data:
            raise ValueError(f"No data found in secret at path: {self.mount_point}/{path}")

        return secret_data

    def get_service_credentials(self, environment: str, prefix: str = "refsync") -> Dict[str, Any]:
        """
        Fetch the service principal credentials of one environment

        Args:
            environment: Which environment ("source" or "target")
            prefix: Secret path prefix below the mount (default: "refsync")

        Returns:
            Dictionary containing url, tenant_id, client_id, client_secret

        Raises:
            ValueError: If environment is invalid or credentials are incomplete
        """
        if environment not in SERVICE_ENVIRONMENTS:
            raise ValueError(
                f"Unsupported environment: {environment!r}. Must be 'source' or 'target'."
            )

        secret_data = self.get_secret(f"{prefix.strip('/')}/{environment}")

        missing_fields = [
            field for field in REQUIRED_SERVICE_FIELDS if not secret_data.get(field)
        ]
        if missing_fields:
            raise ValueError(
                f"Missing required fields in {environment} secret: {', '.join(missing_fields)}"
            )

        logger.info(f"Fetched {environment} credentials from Vault")
        return {field: secret_data[field] for field in REQUIRED_SERVICE_FIELDS}
