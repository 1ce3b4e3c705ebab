"""External redirect gate adapters."""

from keygate.integrations.gate.factory import GateFactory, get_gate
from keygate.integrations.gate.interfaces import GateError, RedirectGate

__all__ = ["GateError", "GateFactory", "RedirectGate", "get_gate"]
