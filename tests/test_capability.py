from unittest.mock import AsyncMock, Mock

import pytest

from dreamhouse.capability import CapabilityGate, CapabilityState, EnvCredentialProvider

from conftest import FakeCredentialProvider


@pytest.mark.asyncio
async def test_starts_unknown_and_probe_is_repeatable(gate, provider):
    assert gate.state == CapabilityState.UNKNOWN

    assert await gate.probe() == CapabilityState.AVAILABLE
    assert await gate.probe() == CapabilityState.AVAILABLE
    assert provider.probes == 2


@pytest.mark.asyncio
async def test_ensure_probed_only_probes_once(gate, provider):
    await gate.ensure_probed()
    await gate.ensure_probed()
    assert provider.probes == 1


@pytest.mark.asyncio
async def test_probe_without_grant():
    gate = CapabilityGate(FakeCredentialProvider(granted=False))
    assert await gate.probe() == CapabilityState.UNAVAILABLE
    assert not gate.is_available


@pytest.mark.asyncio
async def test_grant_is_optimistic():
    provider = FakeCredentialProvider(granted=False)
    gate = CapabilityGate(provider)
    await gate.probe()

    assert await gate.request_grant("new-key") == CapabilityState.AVAILABLE
    assert provider.grant_requests == 1
    assert gate.is_available


@pytest.mark.asyncio
async def test_demote_after_rejection(available_gate):
    available_gate.demote("API key not valid")
    assert available_gate.state == CapabilityState.UNAVAILABLE

    # A later probe may bring it back; the gate does not remember the rejection.
    assert await available_gate.probe() == CapabilityState.AVAILABLE


@pytest.mark.asyncio
async def test_grant_runs_provider_flow_without_verifying():
    provider = Mock()
    provider.request_grant = AsyncMock()
    provider.has_grant = AsyncMock(return_value=False)
    gate = CapabilityGate(provider)

    await gate.request_grant()

    provider.request_grant.assert_awaited_once_with(None)
    provider.has_grant.assert_not_awaited()
    assert gate.is_available


class TestEnvCredentialProvider:

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("VEO_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"):
            monkeypatch.delenv(name, raising=False)

    @pytest.mark.asyncio
    async def test_no_key(self):
        assert not await EnvCredentialProvider().has_grant()

    def test_prefers_video_key(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
        monkeypatch.setenv("VEO_API_KEY", "veo-key")
        assert EnvCredentialProvider().api_key() == "veo-key"

    def test_falls_back_to_gemini_key(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
        assert EnvCredentialProvider().api_key() == "google-key"

    @pytest.mark.asyncio
    async def test_explicit_key_overrides_env(self, monkeypatch):
        monkeypatch.setenv("VEO_API_KEY", "veo-key")
        provider = EnvCredentialProvider()

        await provider.request_grant("selected-key")

        assert provider.api_key() == "selected-key"
        assert await provider.has_grant()

    @pytest.mark.asyncio
    async def test_grant_rereads_dotenv(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("VEO_API_KEY=from-dotenv\n")
        provider = EnvCredentialProvider()
        assert not await provider.has_grant()

        await provider.request_grant()

        assert provider.api_key() == "from-dotenv"
