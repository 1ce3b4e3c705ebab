"""Client-side exceptions."""


class ClientError(Exception):
    """Base class for KeyGate client errors."""


class ServiceUnavailableError(ClientError):
    """Transport failure, 5xx or rate limiting. Retry later; not a negative answer."""


class RequestRejectedError(ClientError):
    """The service rejected the request as malformed (HTTP 400)."""
