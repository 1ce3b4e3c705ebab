"""Client-side entitlement handling.

Embedded by front ends: keeps a stable device id, caches the last confirmed
entitlement, and re-validates it against the KeyGate API.
"""

from keygate.client.api_client import KeyGateClient
from keygate.client.cache import CachedEntitlement, EntitlementCache
from keygate.client.controller import EntitlementController, EntitlementState
from keygate.client.device import DeviceIdentityProvider
from keygate.client.exceptions import (
    ClientError,
    RequestRejectedError,
    ServiceUnavailableError,
)

__all__ = [
    "CachedEntitlement",
    "ClientError",
    "DeviceIdentityProvider",
    "EntitlementCache",
    "EntitlementController",
    "EntitlementState",
    "KeyGateClient",
    "RequestRejectedError",
    "ServiceUnavailableError",
]
