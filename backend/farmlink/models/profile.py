from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from farmlink.db.base import Base


class Profile(Base):
    """Local mirror of an identity-service user."""

    __tablename__ = "profiles"

    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_type: Mapped[str] = mapped_column(
        String(20), default="buyer", server_default="buyer", nullable=False
    )  # farmer / buyer
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
