"""Gate factory selecting the redirect gate from configuration."""

from keygate.core.config import settings
from keygate.integrations.gate.interfaces import RedirectGate


class GateFactory:
    """Factory for creating the redirect gate based on configuration."""

    _instance: RedirectGate | None = None

    @classmethod
    def get_gate(cls) -> RedirectGate:
        """Get the configured redirect gate (singleton)."""
        if cls._instance is None:
            cls._instance = cls._create_gate()
        return cls._instance

    @classmethod
    def _create_gate(cls) -> RedirectGate:
        provider = settings.GATE_PROVIDER

        if provider == "mock":
            from keygate.integrations.gate.mock import MockGate

            return MockGate()

        elif provider == "vplink":
            from keygate.integrations.gate.vplink import VPLinkGate

            return VPLinkGate()

        else:
            raise ValueError(f"Unknown gate provider: {provider}")

    @classmethod
    def reset(cls) -> None:
        """Reset the gate instance (useful for testing)."""
        cls._instance = None


def get_gate() -> RedirectGate:
    """Convenience function to get the redirect gate."""
    return GateFactory.get_gate()
