"""KeyGate: device-bound, gate-completed access tokens."""

__version__ = "1.0.0"
