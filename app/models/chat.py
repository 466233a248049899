"""
Chat models.

A conversation is the single thread between a manager and one of their
clients. Messages are stored in insertion order.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JSONType


MESSAGE_TYPES = ("TEXT", "ALERT", "SYSTEM", "FILE")
# ALERT and SYSTEM messages are posted by the server only
USER_MESSAGE_TYPES = ("TEXT", "FILE")


class ChatConversation(Base):
    """Two-party thread between a manager and a client."""

    __tablename__ = "chat_conversations"

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
    client_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    last_message_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    manager: Mapped["User"] = relationship("User")
    client: Mapped["Client"] = relationship("Client")
    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage", back_populates="conversation", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("manager_id", "client_id", name="uq_chat_conversations_pair"),
        Index("ix_chat_conversations_last_message_at", "last_message_at"),
    )

    def __repr__(self) -> str:
        return f"<ChatConversation manager={self.manager_id} client={self.client_id}>"


class ChatMessage(Base):
    """Message posted in a conversation."""

    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    conversation_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("chat_conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    content: Mapped[Optional[str]] = mapped_column(Text)
    message_type: Mapped[str] = mapped_column(String(10), default="TEXT", nullable=False)
    attachment_url: Mapped[Optional[str]] = mapped_column(String(1000))
    attachment_name: Mapped[Optional[str]] = mapped_column(String(255))
    data: Mapped[dict] = mapped_column(JSONType, default=dict)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    conversation: Mapped["ChatConversation"] = relationship(
        "ChatConversation", back_populates="messages"
    )
    sender: Mapped["User"] = relationship("User")

    __table_args__ = (
        Index("ix_chat_messages_conversation_created", "conversation_id", "created_at"),
        Index("ix_chat_messages_unread", "conversation_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<ChatMessage {self.message_type} conversation={self.conversation_id}>"
