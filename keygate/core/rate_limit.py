"""Rate limiting for the public token endpoints.

Issuance is limited more strictly than validation: every issue call creates a
pending record and an upstream gate request, while validation is a read plus
at most one state transition.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from keygate.core.config import settings

# IP-based limiter (the token endpoints are unauthenticated)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

ISSUE_LIMIT = settings.RATE_LIMIT_ISSUE
VALIDATE_LIMIT = settings.RATE_LIMIT_VALIDATE
