"""
Carbon Survey — User model.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carbonsurvey.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    username: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False,
        comment="Email or phone used at signup",
    )
    password: Mapped[str] = mapped_column(
        String, nullable=False, comment="bcrypt hash"
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(
        String, unique=True, index=True, nullable=True
    )
    phone: Mapped[str | None] = mapped_column(
        String, unique=True, index=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    survey_templates: Mapped[list["SurveyTemplate"]] = relationship(
        "SurveyTemplate", back_populates="creator"
    )
    surveys: Mapped[list["Survey"]] = relationship(
        "Survey", back_populates="conductor"
    )

    def __repr__(self) -> str:
        return f"<User {self.username!r} id={self.id}>"
