"""
Carbon Survey — Survey template and conducted survey models.

Questions and responses are stored as JSON arrays, exactly as they travel
over the wire::

    questions: [{"id": "q1", "text": "...", "unit": "kWh", "coefficient": 0.45}]
    responses: [{"questionId": "q1", "value": 100, "carbonEquivalent": 45.0}]
"""

from datetime import datetime

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carbonsurvey.database import Base, JSONType


class SurveyTemplate(Base):
    __tablename__ = "survey_templates"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    code: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False,
        comment="PREFIX-YYYY-XXXXXX, immutable",
    )
    questions: Mapped[list] = mapped_column(JSONType, nullable=False)
    created_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────
    creator: Mapped["User"] = relationship("User", back_populates="survey_templates")
    surveys: Mapped[list["Survey"]] = relationship("Survey", back_populates="template")

    def __repr__(self) -> str:
        return f"<SurveyTemplate {self.code!r} id={self.id}>"


class Survey(Base):
    __tablename__ = "surveys"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    template_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("survey_templates.id"), index=True, nullable=False
    )
    household_id: Mapped[str] = mapped_column(String, nullable=False)
    household_address: Mapped[str] = mapped_column(Text, nullable=False)
    occupants: Mapped[int] = mapped_column(Integer, nullable=False)
    area: Mapped[float | None] = mapped_column(
        Numeric(10, 2, asdecimal=False), nullable=True
    )
    responses: Mapped[list] = mapped_column(JSONType, nullable=False)
    total_carbon_footprint: Mapped[float] = mapped_column(
        Float, nullable=False, comment="kg CO2, sum of response equivalents"
    )
    conducted_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    template: Mapped["SurveyTemplate"] = relationship(
        "SurveyTemplate", back_populates="surveys"
    )
    conductor: Mapped["User"] = relationship("User", back_populates="surveys")

    def __repr__(self) -> str:
        return (
            f"<Survey id={self.id} household={self.household_id!r} "
            f"total={self.total_carbon_footprint}>"
        )
