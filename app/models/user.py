"""
User and Client models.

Implements database schema for:
- Users (managers and client logins), authenticated with an Argon2id hash
- Clients, the advertiser companies a manager runs campaigns for
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    LargeBinary,
    String,
    Uuid,
    and_,
    or_,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


USER_ROLES = ("manager", "client")


class User(Base):
    """
    User model.

    A manager owns clients and their campaigns. A client user logs in to see
    the campaigns of the Client record linked to it.
    """

    __tablename__ = "users"

    # Primary key
    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # Authentication
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Profile
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="manager", nullable=False)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    company: Mapped[Optional[str]] = mapped_column(String(255))

    # Client users point at the manager who created them
    manager_id: Mapped[Optional[str]] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    google_ads_customer_id: Mapped[Optional[str]] = mapped_column(String(20))

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    clients: Mapped[list["Client"]] = relationship(
        "Client",
        back_populates="manager",
        foreign_keys="Client.manager_id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_users_role", "role"),
        Index("ix_users_manager_id", "manager_id"),
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"

    @property
    def is_manager(self) -> bool:
        return self.role == "manager"



class Client(Base):
    """
    Advertiser company managed by a manager.

    The Google Ads refresh token is stored Fernet-encrypted.
    """

    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    manager_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Login account of the client, if one was created
    user_id: Mapped[Optional[str]] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    company: Mapped[Optional[str]] = mapped_column(String(255))

    # Google Ads
    google_ads_customer_id: Mapped[Optional[str]] = mapped_column(String(20))
    google_ads_refresh_token: Mapped[Optional[bytes]] = mapped_column(LargeBinary)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    manager: Mapped["User"] = relationship(
        "User", back_populates="clients", foreign_keys=[manager_id]
    )
    user: Mapped[Optional["User"]] = relationship("User", foreign_keys=[user_id])
    campaigns: Mapped[list["Campaign"]] = relationship(
        "Campaign", back_populates="client", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_clients_manager_id", "manager_id"),
        Index("ix_clients_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Client {self.name} ({self.id})>"

    @property
    def has_google_ads(self) -> bool:
        return bool(self.google_ads_customer_id and self.google_ads_refresh_token)

    def is_linked_to(self, user: "User") -> bool:
        """Whether a client login belongs to this client."""
        if self.user_id is not None and self.user_id == user.id:
            return True
        # Logins without a stored link match by e-mail, within the same manager only
        return self.email == user.email and self.manager_id == user.manager_id

    @classmethod
    def linked_to(cls, user: "User"):
        """SQL condition selecting the clients a client login belongs to."""
        return or_(
            cls.user_id == user.id,
            and_(cls.email == user.email, cls.manager_id == user.manager_id),
        )
