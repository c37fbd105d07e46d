"""Initial schema — users, survey_templates, surveys.

Revision ID: 001_initial
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "username",
            sa.String,
            nullable=False,
            comment="Email or phone used at signup",
        ),
        sa.Column("password", sa.String, nullable=False, comment="bcrypt hash"),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("email", sa.String, nullable=True),
        sa.Column("phone", sa.String, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_phone", "users", ["phone"], unique=True)

    # ── 2. survey_templates ─────────────────────────────────────────
    op.create_table(
        "survey_templates",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "code",
            sa.String,
            nullable=False,
            comment="PREFIX-YYYY-XXXXXX, immutable",
        ),
        sa.Column(
            "questions",
            _JSON,
            nullable=False,
            comment="Array of {id, text, unit, coefficient}",
        ),
        sa.Column(
            "created_by",
            sa.Integer,
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_survey_templates_code", "survey_templates", ["code"], unique=True)

    # ── 3. surveys ──────────────────────────────────────────────────
    op.create_table(
        "surveys",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "template_id",
            sa.Integer,
            sa.ForeignKey("survey_templates.id"),
            nullable=False,
        ),
        sa.Column("household_id", sa.String, nullable=False),
        sa.Column("household_address", sa.Text, nullable=False),
        sa.Column("occupants", sa.Integer, nullable=False),
        sa.Column("area", sa.Numeric(10, 2), nullable=True),
        sa.Column(
            "responses",
            _JSON,
            nullable=False,
            comment="Array of {questionId, value, carbonEquivalent}",
        ),
        sa.Column(
            "total_carbon_footprint",
            sa.Float,
            nullable=False,
            comment="kg CO2, sum of response equivalents",
        ),
        sa.Column(
            "conducted_by",
            sa.Integer,
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_surveys_template_id", "surveys", ["template_id"])
    op.create_index("ix_surveys_conducted_by", "surveys", ["conducted_by"])


def downgrade() -> None:
    op.drop_table("surveys")
    op.drop_table("survey_templates")
    op.drop_table("users")
