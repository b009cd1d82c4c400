"""Unit tests for AnalysisStore credential loading, with repositories patched."""
from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from db.encryption import CredentialDecryptError
from db.store import AnalysisStore

STORE_MODULE = "db.store"
AGENCY_ID = "7d4a1c52-9b1e-4f0a-8a57-3c2e51f0b6aa"


@asynccontextmanager
async def _no_session():
    yield None


def _agency(**overrides):
    fields = {
        "llm_credentials_enc": None,
        "whatsapp_instance": "agency1",
        "whatsapp_number": "5511900001111",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _integration(integration_type, ciphertext):
    return SimpleNamespace(type=integration_type, credentials_enc=ciphertext)


async def _load(agency, integrations, decrypted):
    def fake_decrypt(ciphertext):
        value = decrypted[ciphertext]
        if isinstance(value, Exception):
            raise value
        return value

    with patch(f"{STORE_MODULE}.clients_repo.get_agency", AsyncMock(return_value=agency)), \
         patch(f"{STORE_MODULE}.clients_repo.get_active_integrations",
               AsyncMock(return_value=integrations)), \
         patch(f"{STORE_MODULE}.decrypt_json", side_effect=fake_decrypt):
        return await AnalysisStore(session_scope=_no_session).get_agency_credentials(AGENCY_ID)


class TestGetAgencyCredentials:
    @pytest.mark.asyncio
    async def test_all_providers(self):
        creds = await _load(
            _agency(llm_credentials_enc="enc-llm"),
            [_integration("asaas", "enc-asaas"), _integration("dom_pagamentos", "enc-dom")],
            {
                "enc-asaas": {"api_key": "$aact_abc"},
                "enc-dom": {"token": "dom-token", "environment": "sandbox"},
                "enc-llm": {"api_key": "sk-agency"},
            },
        )
        assert creds.asaas_api_key == "$aact_abc"
        assert creds.dom.token == "dom-token"
        assert creds.dom.environment == "sandbox"
        assert creds.llm_api_key == "sk-agency"
        assert creds.messaging_instance == "agency1"
        assert creds.messaging_number == "5511900001111"

    @pytest.mark.asyncio
    async def test_dom_environment_defaults_to_production(self):
        creds = await _load(
            _agency(),
            [_integration("dom_pagamentos", "enc-dom")],
            {"enc-dom": {"token": "dom-token"}},
        )
        assert creds.dom.environment == "production"

    @pytest.mark.asyncio
    async def test_unknown_dom_environment_drops_dom_only(self):
        creds = await _load(
            _agency(),
            [_integration("dom_pagamentos", "enc-dom"), _integration("asaas", "enc-asaas")],
            {
                "enc-dom": {"token": "dom-token", "environment": "homolog"},
                "enc-asaas": {"api_key": "$aact_abc"},
            },
        )
        assert creds.dom is None
        assert creds.asaas_api_key == "$aact_abc"
        assert creds.messaging_instance == "agency1"

    @pytest.mark.asyncio
    async def test_non_string_keys_are_dropped(self):
        creds = await _load(
            _agency(llm_credentials_enc="enc-llm"),
            [_integration("asaas", "enc-asaas"), _integration("dom_pagamentos", "enc-dom")],
            {
                "enc-asaas": {"api_key": 12345},
                "enc-dom": {"token": ["not", "a", "token"]},
                "enc-llm": {"api_key": {"nested": True}},
            },
        )
        assert creds.asaas_api_key is None
        assert creds.dom is None
        assert creds.llm_api_key is None
        assert creds.messaging_instance == "agency1"

    @pytest.mark.asyncio
    async def test_undecryptable_provider_is_dropped(self):
        creds = await _load(
            _agency(),
            [_integration("asaas", "enc-asaas"), _integration("dom_pagamentos", "enc-dom")],
            {
                "enc-asaas": CredentialDecryptError("bad tag"),
                "enc-dom": {"token": "dom-token"},
            },
        )
        assert creds.asaas_api_key is None
        assert creds.dom.token == "dom-token"

    @pytest.mark.asyncio
    async def test_missing_agency(self):
        creds = await _load(None, [], {})
        assert creds.messaging_instance is None
        assert creds.llm_api_key is None
