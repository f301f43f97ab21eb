"""
Credential management and service construction for the CLI.

Connection settings for each environment come from command-line flags,
then environment variables, or from HashiCorp Vault when --use-vault is
given.
"""

import argparse
import logging
import os

from refsync.errors import ConfigurationError
from refsync.service import WebApiRecordService
from utils.vault_client import VaultClient

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("url", "tenant_id", "client_id", "client_secret")


def _from_args_or_env(args: argparse.Namespace, environment: str) -> dict[str, str | None]:
    prefix = environment.upper()
    return {
        "url": (
            getattr(args, f"{environment}_url", None)
            or os.getenv(f"REFSYNC_{prefix}_URL")
        ),
        "tenant_id": getattr(args, "tenant_id", None) or os.getenv("REFSYNC_TENANT_ID"),
        "client_id": getattr(args, "client_id", None) or os.getenv("REFSYNC_CLIENT_ID"),
        "client_secret": (
            getattr(args, "client_secret", None) or os.getenv("REFSYNC_CLIENT_SECRET")
        ),
    }


def get_credentials_from_vault_or_env(args: argparse.Namespace) -> tuple:
    """
    Get environment credentials from Vault or environment/args

    Args:
        args: Parsed command-line arguments

    Returns:
        Tuple of (source_config, target_config)

    Raises:
        ConfigurationError: If credentials are incomplete or Vault fails
    """
    if getattr(args, "use_vault", False):
        try:
            vault_client = VaultClient()
            source_config = vault_client.get_service_credentials("source")
            target_config = vault_client.get_service_credentials("target")
        except Exception as e:
            raise ConfigurationError(f"Failed to fetch credentials from Vault: {e}") from e

        logger.info("Successfully fetched credentials from Vault")
    else:
        source_config = _from_args_or_env(args, "source")
        target_config = _from_args_or_env(args, "target")

    for environment, config in (("source", source_config), ("target", target_config)):
        missing = [name for name in REQUIRED_FIELDS if not config.get(name)]
        if missing:
            raise ConfigurationError(
                f"Missing {environment} connection setting(s): {', '.join(missing)}"
            )

    return source_config, target_config


def create_services(source_config: dict, target_config: dict) -> tuple:
    """
    Build Web API clients for both environments

    Returns:
        Tuple of (source_service, target_service)
    """
    services = []
    for config in (source_config, target_config):
        services.append(WebApiRecordService(
            config["url"],
            tenant_id=config["tenant_id"],
            client_id=config["client_id"],
            client_secret=config["client_secret"],
        ))
    return tuple(services)
