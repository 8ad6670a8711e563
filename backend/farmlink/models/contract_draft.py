from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmlink.db.base import Base


class ContractTemplate(Base):
    __tablename__ = "contract_templates"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    template_fields: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    is_default: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )


class ContractDraft(Base):
    """Work-in-progress contract terms, submitted later as a real contract."""

    __tablename__ = "contract_drafts"

    template_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("contract_templates.id", ondelete="SET NULL"), nullable=True
    )
    farmer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    buyer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    contract_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), default="draft", server_default="draft", nullable=False
    )  # draft / submitted
    contract_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="SET NULL"), nullable=True
    )

    template = relationship("ContractTemplate", lazy="selectin")
    farmer = relationship("Profile", foreign_keys=[farmer_id], lazy="selectin")
    buyer = relationship("Profile", foreign_keys=[buyer_id], lazy="selectin")
