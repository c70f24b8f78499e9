"""Profile-based policy evaluation.

A profile maps backend ids to one component filter per capability kind.
Evaluation order for ``(profile, backend, kind, name)``:

1. unknown profile → deny
2. backend not listed under the profile → deny
3. any deny pattern matches → deny
4. empty allow list → allow
5. otherwise allow only if some allow pattern matches

Usage::

    engine = PolicyEngine(config.profiles)
    if engine.allowed("safe", "fs", CapabilityKind.TOOL, "read_file"):
        ...
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping, Optional

from mcp_warden.capabilities import CapabilityKind
from mcp_warden.config.schema import ComponentFilterConfig, ProfileConfig
from mcp_warden.policy.patterns import match_any

logger = logging.getLogger(__name__)


class DecisionReason(str, Enum):
    """Why a policy decision came out the way it did."""

    ALLOW = "allow"
    UNKNOWN_PROFILE = "unknown-profile"
    UNKNOWN_BACKEND = "unknown-backend"
    DENIED_BY_PATTERN = "denied-by-pattern"
    NOT_IN_ALLOW_LIST = "not-in-allow-list"

    @property
    def allowed(self) -> bool:
        return self is DecisionReason.ALLOW


class PolicyEngine:
    """Evaluates profile allow/deny lists.

    Parameters
    ----------
    profiles:
        Mapping of profile id to profile definition.  The engine keeps a
        shallow copy; :meth:`reload` replaces it wholesale.
    """

    def __init__(self, profiles: Mapping[str, ProfileConfig]) -> None:
        self._profiles: Mapping[str, ProfileConfig] = dict(profiles)

    @property
    def profile_ids(self) -> list:
        return list(self._profiles)

    def effective_filter(
        self,
        profile_id: str,
        backend_id: str,
        kind: CapabilityKind,
    ) -> Optional[ComponentFilterConfig]:
        """Return the filter in force, or ``None`` when evaluation fails closed."""
        profile = self._profiles.get(profile_id)
        if profile is None:
            return None
        backend_profile = profile.servers.get(backend_id)
        if backend_profile is None:
            return None
        return backend_profile.filter_for(kind)

    def evaluate(
        self,
        profile_id: str,
        backend_id: str,
        kind: CapabilityKind,
        name: str,
    ) -> DecisionReason:
        """Evaluate one capability name and return the decision reason."""
        profiles = self._profiles
        profile = profiles.get(profile_id)
        if profile is None:
            return DecisionReason.UNKNOWN_PROFILE
        backend_profile = profile.servers.get(backend_id)
        if backend_profile is None:
            return DecisionReason.UNKNOWN_BACKEND

        component = backend_profile.filter_for(kind)
        if match_any(name, component.deny):
            return DecisionReason.DENIED_BY_PATTERN
        if not component.allow:
            return DecisionReason.ALLOW
        if match_any(name, component.allow):
            return DecisionReason.ALLOW
        return DecisionReason.NOT_IN_ALLOW_LIST

    def allowed(
        self,
        profile_id: str,
        backend_id: str,
        kind: CapabilityKind,
        name: str,
    ) -> bool:
        decision = self.evaluate(profile_id, backend_id, kind, name)
        if not decision.allowed:
            logger.debug(
                "Policy deny: profile=%s backend=%s %s=%s reason=%s",
                profile_id,
                backend_id,
                kind.label,
                name,
                decision.value,
            )
        return decision.allowed

    def reload(self, profiles: Mapping[str, ProfileConfig]) -> None:
        """Hot-swap the profile mapping (no restart needed)."""
        self._profiles = dict(profiles)
        logger.info("Policy profiles reloaded: %d profile(s)", len(self._profiles))

    @classmethod
    def from_config(cls, config) -> PolicyEngine:
        """Create from a validated :class:`~mcp_warden.config.schema.WardenConfig`."""
        return cls(config.profiles)
