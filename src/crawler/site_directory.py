"""Per-site retrieval hints, precomputed once from a configuration table.

Each row names a registered domain and the flags the channel selector cares
about. Lookups walk the hostname's parent domains so ``www.nytimes.com`` and
``theater.nytimes.com`` both resolve to the ``nytimes.com`` row.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from src.models.retrieval import SiteHints

from .utils import registered_host

logger = logging.getLogger(__name__)


# Sites that block automation or gate content behind a login. Realm names
# match the credential env vars (``<REALM>_EMAIL`` / ``<REALM>_PASSWORD``).
DEFAULT_SITE_TABLE: list[dict[str, Any]] = [
    {"domain": "nytimes.com", "known_blocked": True, "paywalled": True, "realm": "NYT"},
    {"domain": "vulture.com", "known_blocked": True, "paywalled": True, "realm": "VULTURE"},
    {"domain": "nymag.com", "known_blocked": True, "paywalled": True, "realm": "VULTURE"},
    {"domain": "newyorker.com", "known_blocked": True, "paywalled": True, "realm": "VULTURE"},
    {"domain": "washingtonpost.com", "known_blocked": True, "paywalled": True, "realm": "WAPO"},
    {"domain": "variety.com", "known_blocked": True},
    {"domain": "hollywoodreporter.com", "known_blocked": True},
    {"domain": "nypost.com", "known_blocked": True},
    {"domain": "nydailynews.com", "known_blocked": True},
    {"domain": "wsj.com", "known_blocked": True, "paywalled": True},
    {"domain": "ew.com", "archive_preferred": True},
    {"domain": "amny.com", "archive_preferred": True},
]


class SiteDirectory:
    """Domain -> :class:`SiteHints` lookup."""

    def __init__(self, rows: Iterable[Mapping[str, Any]] | None = None):
        self._hints: dict[str, SiteHints] = {}
        for row in DEFAULT_SITE_TABLE if rows is None else rows:
            domain = str(row.get("domain", "")).strip().lower()
            if domain.startswith("www."):
                domain = domain[4:]
            if not domain:
                logger.warning(f"Skipping site table row without a domain: {row!r}")
                continue
            realm = row.get("realm")
            self._hints[domain] = SiteHints(
                paywalled=bool(row.get("paywalled", False)),
                known_blocked=bool(row.get("known_blocked", False)),
                archive_preferred=bool(row.get("archive_preferred", False)),
                realm=str(realm).upper() if realm else None,
            )
        logger.debug(f"Site directory loaded with {len(self._hints)} domains")

    def __len__(self) -> int:
        return len(self._hints)

    def __contains__(self, domain: str) -> bool:
        return domain.lower() in self._hints

    def domain_for(self, url: str) -> str | None:
        """Return the configured domain a url belongs to, if any."""
        host = registered_host(url)
        parts = host.split(".")
        for i in range(len(parts) - 1):
            candidate = ".".join(parts[i:])
            if candidate in self._hints:
                return candidate
        return None

    def hints_for(self, url: str) -> SiteHints:
        domain = self.domain_for(url)
        if domain is None:
            return SiteHints()
        return self._hints[domain]

    def realms(self) -> set[str]:
        return {h.realm for h in self._hints.values() if h.realm}
