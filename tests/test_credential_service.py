from __future__ import annotations

import uuid

import pytest
from cryptography.fernet import Fernet

from app.models.integration import Integration
from app.services.credential_service import CredentialService
from app.services.errors import CredentialError


def make_integration(token):
    return Integration(
        id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        integration_type="pipefy",
        access_token=token,
    )


class TestCredentialService:
    def test_round_trip(self):
        service = CredentialService(key=Fernet.generate_key().decode())
        stored = service.encrypt("secret-token")
        assert stored != "secret-token"
        assert service.access_token_for(make_integration(stored)) == "secret-token"

    def test_wrong_key_is_credential_error(self):
        stored = CredentialService(key=Fernet.generate_key().decode()).encrypt("secret-token")
        other = CredentialService(key=Fernet.generate_key().decode())
        with pytest.raises(CredentialError):
            other.access_token_for(make_integration(stored))

    def test_missing_token(self):
        with pytest.raises(CredentialError, match="No access token configured"):
            CredentialService(key="").access_token_for(make_integration(None))

    def test_without_key_tokens_are_plain(self):
        service = CredentialService(key="")
        assert service.encrypt("abc") == "abc"
        assert service.access_token_for(make_integration("abc")) == "abc"
