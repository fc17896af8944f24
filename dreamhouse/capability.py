"""
Capability Gate — tracks whether the privileged (video) generation path is usable.

States:
  UNKNOWN      not probed yet
  UNAVAILABLE  no key, or the service rejected the key
  AVAILABLE    a key is present (not necessarily verified)

A grant is optimistic: ``request_grant`` marks the gate AVAILABLE as soon as
the credential flow returns. The key is only verified by the next privileged
call, which may demote the gate again. Users therefore see a delayed failure
on the first video attempt after granting a bad key.
"""

import os
import asyncio
import threading
import logging
from enum import Enum
from typing import Optional

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)


class CapabilityState(str, Enum):
    UNKNOWN = "UNKNOWN"
    UNAVAILABLE = "UNAVAILABLE"
    AVAILABLE = "AVAILABLE"


# ── Credential provider ──────────────────────────────────────────────────────

class EnvCredentialProvider:
    """
    Reads the video key from the environment.

    ``request_grant`` is the credential-selection flow: it installs an
    explicitly supplied key, or re-reads ``.env`` so an operator can drop a
    key in without restarting the process.
    """

    def __init__(self, env_var: str = "VEO_API_KEY", fallback_env_vars: tuple = ("GEMINI_API_KEY", "GOOGLE_API_KEY")):
        self.env_var = env_var
        self.fallback_env_vars = fallback_env_vars
        self._override: Optional[str] = None

    def api_key(self) -> str:
        if self._override:
            return self._override
        for name in (self.env_var, *self.fallback_env_vars):
            value = os.environ.get(name, "")
            if value:
                return value
        return ""

    async def has_grant(self) -> bool:
        return bool(self.api_key())

    async def request_grant(self, api_key: Optional[str] = None):
        if api_key:
            self._override = api_key
            logger.info(f"Video key installed ({api_key[:4]}...)")
            return
        await asyncio.to_thread(load_dotenv, find_dotenv(usecwd=True), override=True)
        logger.info(f"Re-read environment for {self.env_var}")


# ── Gate ─────────────────────────────────────────────────────────────────────

class CapabilityGate:
    """
    Shared, explicitly passed handle over the privileged capability.

    Reads and writes of the tri-state go through one lock, so a demotion from
    a failing video poll is never torn against a concurrent probe.
    """

    def __init__(self, provider=None):
        self.provider = provider or EnvCredentialProvider()
        self._lock = threading.Lock()
        self._state = CapabilityState.UNKNOWN

    @property
    def state(self) -> CapabilityState:
        with self._lock:
            return self._state

    @property
    def is_available(self) -> bool:
        return self.state == CapabilityState.AVAILABLE

    def _set(self, state: CapabilityState, reason: str = ""):
        with self._lock:
            previous, self._state = self._state, state
        if previous != state:
            logger.info(f"Capability {previous.value} → {state.value} {reason}".rstrip())

    async def probe(self) -> CapabilityState:
        """Read current availability from the provider. Safe to repeat."""
        has_grant = await self.provider.has_grant()
        self._set(CapabilityState.AVAILABLE if has_grant else CapabilityState.UNAVAILABLE, "(probe)")
        return self.state

    async def ensure_probed(self) -> CapabilityState:
        """Lazy initialization: probe only if the gate has never been probed."""
        if self.state == CapabilityState.UNKNOWN:
            return await self.probe()
        return self.state

    async def request_grant(self, api_key: Optional[str] = None) -> CapabilityState:
        """Run the credential flow, then optimistically mark the gate AVAILABLE."""
        await self.provider.request_grant(api_key)
        self._set(CapabilityState.AVAILABLE, "(grant)")
        return self.state

    def demote(self, reason: str = "credential rejected"):
        """Force UNAVAILABLE after the service rejects the key."""
        logger.warning(f"Demoting video capability: {reason}")
        self._set(CapabilityState.UNAVAILABLE, f"({reason})")
