"""Mock redirect gate for development and testing.

Returns deterministic local URLs and remembers where each one leads, so a
demo front end can "click through" without an external provider.
"""

import hashlib

from keygate.core.config import settings
from keygate.integrations.gate.interfaces import GateError, RedirectGate

# Links remembered for resolve(); the oldest are forgotten first
MAX_REMEMBERED_LINKS = 1000


class MockGate(RedirectGate):
    """Deterministic gate: ``{base_url}/{sha256(destination)[:12]}``."""

    name = "mock"

    def __init__(self, base_url: str | None = None, max_links: int = MAX_REMEMBERED_LINKS):
        self.base_url = (base_url or settings.MOCK_GATE_BASE_URL).rstrip("/")
        self.max_links = max_links
        self._destinations: dict[str, str] = {}

    @staticmethod
    def slug_for(destination_url: str) -> str:
        return hashlib.sha256(destination_url.encode("utf-8")).hexdigest()[:12]

    async def shorten(self, destination_url: str) -> str:
        slug = self.slug_for(destination_url)
        self._destinations.pop(slug, None)
        self._destinations[slug] = destination_url
        while len(self._destinations) > self.max_links:
            del self._destinations[next(iter(self._destinations))]
        return f"{self.base_url}/{slug}"

    def resolve(self, slug: str) -> str:
        """Return the destination a mock gate URL redirects to."""
        try:
            return self._destinations[slug]
        except KeyError:
            raise GateError(f"Unknown gate link: {slug}") from None
