from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmlink.db.base import Base


class Conversation(Base):
    """Two-party thread, optionally about one contract.

    Participants are stored lowest id first, so a pair maps to one row per contract.
    """

    __tablename__ = "conversations"

    participant_1_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    participant_2_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contract_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=True
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    participant_1 = relationship("Profile", foreign_keys=[participant_1_id], lazy="selectin")
    participant_2 = relationship("Profile", foreign_keys=[participant_2_id], lazy="selectin")
    contract = relationship("Contract", lazy="selectin")

    __table_args__ = (
        UniqueConstraint(
            "participant_1_id", "participant_2_id", "contract_id",
            name="uq_conversations_participants_contract",
        ),
        # NULL contract ids never collide under the constraint above
        Index(
            "uq_conversations_participants_general",
            "participant_1_id", "participant_2_id",
            unique=True,
            postgresql_where=text("contract_id IS NULL"),
            sqlite_where=text("contract_id IS NULL"),
        ),
    )


class Message(Base):
    __tablename__ = "messages"

    conversation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sender = relationship("Profile", lazy="selectin")

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )
