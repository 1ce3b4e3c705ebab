"""Device-bound access token model.

A token grants one boolean entitlement to one device for a fixed window.

Security Properties:
- Unguessable: the id is 256 bits from ``secrets`` and is the credential
- Device-bound: validation with any other device id is rejected
- Fixed lifetime: expires_at is set at issuance and never extended
- One-way activation: pending -> active happens once, atomically
- Revocable: only an explicit operator action revokes
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from keygate.db.session import Base
from keygate.models.base import TimestampMixin, UTCDateTime, utc_now


class TokenState(str, Enum):
    """Lifecycle state of an access token."""

    PENDING = "pending"
    ACTIVE = "active"
    REVOKED = "revoked"


class AccessToken(Base, TimestampMixin):
    """Access token bound to a single device.

    Historical tokens are kept after expiry. Only the most recently issued
    active, unexpired token of a device confers entitlement.
    """

    __tablename__ = "access_tokens"

    # 64 lowercase hex characters
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # 32 lowercase hex characters
    device_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    state: Mapped[TokenState] = mapped_column(
        SQLEnum(
            TokenState,
            name="token_state",
            native_enum=False,
            length=16,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=TokenState.PENDING,
    )

    activated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        # Newest-first lookups of a device's tokens
        Index("ix_access_tokens_device_issued", "device_id", "issued_at"),
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Expired once now reaches expires_at."""
        return self.expires_at <= (now or utc_now())

    @property
    def is_active(self) -> bool:
        return self.state == TokenState.ACTIVE

    @property
    def is_revoked(self) -> bool:
        return self.state == TokenState.REVOKED

    def confers_entitlement(self, now: datetime | None = None) -> bool:
        """Active and unexpired. Superseding is decided by the store."""
        return self.is_active and not self.is_expired(now)

    def __repr__(self) -> str:
        return f"<AccessToken {self.id[:8]} device={self.device_id} state={self.state.value}>"
