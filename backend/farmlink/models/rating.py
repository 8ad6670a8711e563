from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmlink.db.base import Base


class Rating(Base):
    __tablename__ = "ratings"

    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reviewer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    reviewee_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    rating: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    review_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    reviewer = relationship("Profile", foreign_keys=[reviewer_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint(
            "contract_id", "reviewer_id", "reviewee_id", "category",
            name="uq_ratings_contract_reviewer_reviewee_category",
        ),
        CheckConstraint("rating BETWEEN 1 AND 5", name="rating_range"),
    )
