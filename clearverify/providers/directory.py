"""Provider directory: the static registry of payer connection profiles.

Profiles are loaded once at startup from YAML (or a mapping in tests) and
validated with pydantic. Lookups are pure reads with no side effects.

Every profile must have a secondary route: a second declared protocol on
the same provider, or a clearinghouse (its own, else the directory-wide
default).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from pydantic import ValidationError

from .. import config
from ..errors import ProviderConfigError, ProviderNotFound
from ..models import ProtocolVariant, ProviderCategory, ProviderProfile

logger = logging.getLogger(__name__)


class ProviderDirectory:
    """Read-only registry of ProviderProfiles keyed by payer id."""

    def __init__(
        self,
        profiles: Iterable[ProviderProfile],
        default_clearinghouse: str | None = None,
    ) -> None:
        self.default_clearinghouse = default_clearinghouse or None
        self._profiles: dict[str, ProviderProfile] = {}
        for profile in profiles:
            if profile.id in self._profiles:
                raise ProviderConfigError(f"Duplicate provider id: {profile.id}")
            self._profiles[profile.id] = profile

        missing = [
            {"provider": p.id, "clearinghouse": p.clearinghouse}
            for p in self._profiles.values()
            if p.clearinghouse and p.clearinghouse not in self._profiles
        ]
        if missing:
            raise ProviderConfigError(
                f"{len(missing)} provider(s) reference unknown clearinghouses",
                missing,
            )
        if self.default_clearinghouse and self.default_clearinghouse not in self._profiles:
            raise ProviderConfigError(
                f"Default clearinghouse is not configured: {self.default_clearinghouse}"
            )

        unrouted = [
            {"provider": p.id}
            for p in self._profiles.values()
            if p.fallback_protocol() is None and self._clearinghouse_for(p) is None
        ]
        if unrouted:
            raise ProviderConfigError(
                f"{len(unrouted)} provider(s) have no secondary route",
                unrouted,
            )

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        default_clearinghouse: str | None = None,
    ) -> "ProviderDirectory":
        """Build a directory from a parsed config document.

        Args:
            data: Mapping with a ``providers`` list of profile dictionaries
            default_clearinghouse: Secondary route for profiles that name
                neither an alternate protocol nor a clearinghouse

        Raises:
            ProviderConfigError: If any profile fails validation
        """
        entries = data.get("providers")
        if not isinstance(entries, list):
            raise ProviderConfigError("Config must contain a 'providers' list")

        profiles = []
        errors = []
        for index, entry in enumerate(entries):
            try:
                profiles.append(ProviderProfile.model_validate(entry))
            except ValidationError as e:
                errors.append(
                    {
                        "index": index,
                        "id": entry.get("id") if isinstance(entry, dict) else None,
                        "errors": e.errors(include_url=False),
                    }
                )

        if errors:
            raise ProviderConfigError(
                f"Provider config validation failed: {len(errors)} error(s)",
                errors,
            )

        return cls(profiles, default_clearinghouse)

    @classmethod
    def from_yaml(
        cls,
        path: str | Path,
        default_clearinghouse: str | None = None,
    ) -> "ProviderDirectory":
        """Load profiles from a YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ProviderConfigError: If the YAML is invalid or a profile fails
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Provider config not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ProviderConfigError(f"Invalid YAML in {path.name}: {e}") from e

        directory = cls.from_mapping(data or {}, default_clearinghouse)
        logger.info(f"Loaded {len(directory)} provider profile(s) from {path.name}")
        return directory

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, payer_id: object) -> bool:
        return payer_id in self._profiles

    def get(self, payer_id: str) -> ProviderProfile | None:
        return self._profiles.get(payer_id)

    def lookup(self, payer_id: str) -> ProviderProfile:
        """Return the profile for a payer.

        Raises:
            ProviderNotFound: If the payer is not configured
        """
        profile = self._profiles.get(payer_id)
        if profile is None:
            raise ProviderNotFound(
                f"Unsupported insurance provider: {payer_id}", payer_id
            )
        return profile

    def secondary_route(
        self, profile: ProviderProfile
    ) -> tuple[ProviderProfile, ProtocolVariant]:
        """Where to go when a provider's preferred protocol is unavailable.

        A second declared protocol on the same provider wins over a
        clearinghouse.
        """
        protocol = profile.fallback_protocol()
        if protocol is not None:
            return profile, protocol
        clearinghouse = self._clearinghouse_for(profile)
        if clearinghouse is None:
            raise ProviderNotFound(f"No secondary route for {profile.id}", profile.id)
        return clearinghouse, clearinghouse.preferred_protocol()

    def _clearinghouse_for(self, profile: ProviderProfile) -> ProviderProfile | None:
        for candidate in (profile.clearinghouse, self.default_clearinghouse):
            if candidate and candidate != profile.id and candidate in self._profiles:
                return self._profiles[candidate]
        return None

    def provider_ids(self) -> list[str]:
        return list(self._profiles)

    def list_providers(self) -> list[ProviderProfile]:
        return list(self._profiles.values())

    def providers_by_category(
        self, category: ProviderCategory | str
    ) -> list[ProviderProfile]:
        category = ProviderCategory(category)
        return [p for p in self._profiles.values() if p.category == category]

    def requirements(self, payer_id: str) -> dict[str, Any]:
        """Onboarding requirements for a payer's production API."""
        profile = self.lookup(payer_id)
        return {
            "name": profile.name,
            "auth_type": profile.auth_scheme.value,
            "production_requirements": list(profile.production_requirements),
            "sandbox_url": (
                f"{profile.base_url}/sandbox" if profile.sandbox_available else None
            ),
        }


def default_directory() -> ProviderDirectory:
    """Directory loaded from the configured providers file."""
    return ProviderDirectory.from_yaml(
        config.PROVIDERS_FILE, default_clearinghouse=config.DEFAULT_CLEARINGHOUSE
    )
