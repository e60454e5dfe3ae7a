from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from app.config import ENCRYPTION_KEY
from app.models.integration import Integration
from app.services.errors import CredentialError

logger = logging.getLogger(__name__)


class CredentialService:
    """Decrypts integration access tokens stored Fernet-encrypted at rest.

    Without a key, stored tokens are treated as plain text (local development).
    """

    def __init__(self, key: Optional[str] = ENCRYPTION_KEY) -> None:
        self._fernet = Fernet(key.encode()) if key else None

    def encrypt(self, token: str) -> str:
        if self._fernet is None:
            return token
        return self._fernet.encrypt(token.encode()).decode()

    def decrypt(self, value: str) -> str:
        if self._fernet is None:
            return value
        try:
            return self._fernet.decrypt(value.encode()).decode()
        except InvalidToken as e:
            raise CredentialError("Stored access token could not be decrypted") from e

    def access_token_for(self, integration: Integration) -> str:
        """Plain access token for an integration; fails fast when missing or unreadable."""
        if not integration.access_token:
            raise CredentialError(
                f"No access token configured for {integration.integration_type} "
                f"integration {integration.id}"
            )
        try:
            return self.decrypt(integration.access_token)
        except CredentialError:
            logger.error(
                f"Could not decrypt {integration.integration_type} token for integration {integration.id}"
            )
            raise


def create_credential_service(key: Optional[str] = None) -> CredentialService:
    return CredentialService(key if key is not None else ENCRYPTION_KEY)
