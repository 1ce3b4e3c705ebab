"""Contract for the external redirect gate.

A gate takes a destination URL and returns an opaque URL that, once the user
has clicked through it, redirects the browser back to the destination. The
application never learns whether the click-through happened; the token in the
destination URL is the only proof.
"""

from abc import ABC, abstractmethod


class GateError(Exception):
    """The gate failed, timed out, or returned something unusable."""


class RedirectGate(ABC):
    """URL-shortening redirect gate."""

    name: str = "gate"

    @abstractmethod
    async def shorten(self, destination_url: str) -> str:
        """
        Return the gate URL for a destination.

        Raises:
            GateError: On any upstream failure
        """
        pass
