"""Record-store API key storage via OS keyring."""

from __future__ import annotations

import logging
import os

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from tableturn.errors import AuthError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "tableturn-records"
KEYRING_USERNAME = "api_key"


class CredentialStore:
    """Keeps the record-store API key in the OS keyring.

    The environment variable named in the config is a fallback for hosts
    without a keyring backend (CI, containers).
    """

    def store_api_key(self, api_key: str) -> None:
        keyring.set_password(KEYRING_SERVICE, KEYRING_USERNAME, api_key)
        logger.info("API key stored in keyring.")

    def load_api_key(self, env_var: str | None = None) -> str:
        """Keyring first, then `env_var`. Raises AuthError when neither has a key."""
        try:
            api_key = keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
        except KeyringError as e:
            logger.debug("Keyring unavailable: %s", e)
            api_key = None
        if api_key:
            return api_key

        if env_var:
            api_key = os.environ.get(env_var)
            if api_key:
                logger.debug("Using API key from $%s", env_var)
                return api_key

        hint = f" or set ${env_var}" if env_var else ""
        raise AuthError(f"No API key found. Run 'tableturn configure'{hint}.")

    def delete_api_key(self) -> None:
        try:
            keyring.delete_password(KEYRING_SERVICE, KEYRING_USERNAME)
        except PasswordDeleteError:
            logger.debug("No API key to delete")
