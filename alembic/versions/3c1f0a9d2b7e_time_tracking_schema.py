"""time tracking schema

Revision ID: 3c1f0a9d2b7e
Revises:
Create Date: 2026-10-19 09:12:44.301822

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c1f0a9d2b7e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "companies",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_companies_id", "companies", ["id"], unique=False)

    op.create_table(
        "projects",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.String(), sa.ForeignKey("companies.id"), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("value", sa.Numeric(14, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_projects_id", "projects", ["id"], unique=False)
    op.create_index("ix_projects_company_id", "projects", ["company_id"], unique=False)

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("project_id", sa.String(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tasks_id", "tasks", ["id"], unique=False)
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"], unique=False)

    op.create_table(
        "campaigns",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.String(), sa.ForeignKey("companies.id"), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_campaigns_id", "campaigns", ["id"], unique=False)
    op.create_index("ix_campaigns_company_id", "campaigns", ["company_id"], unique=False)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("hourly_salary", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_employees_id", "employees", ["id"], unique=False)
    op.create_index("ix_employees_user_id", "employees", ["user_id"], unique=True)

    op.create_table(
        "time_entries",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("association_kind", sa.String(), nullable=False, server_default="none"),
        sa.Column("association_id", sa.String(), nullable=True),
        sa.Column("company_id", sa.String(), nullable=True),
        sa.Column("is_billable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("origin", sa.String(), nullable=False),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "end_time IS NULL OR end_time > start_time",
            name="ck_time_entries_end_after_start",
        ),
        sa.CheckConstraint(
            "is_billable = false OR company_id IS NOT NULL",
            name="ck_time_entries_billable_requires_company",
        ),
        sa.CheckConstraint(
            "(association_kind = 'none' AND association_id IS NULL)"
            " OR (association_kind IN ('task', 'campaign', 'project') AND association_id IS NOT NULL)",
            name="ck_time_entries_association",
        ),
        sa.CheckConstraint("origin IN ('timer', 'manual')", name="ck_time_entries_origin"),
    )
    op.create_index("ix_time_entries_id", "time_entries", ["id"], unique=False)
    op.create_index("ix_time_entries_user_id", "time_entries", ["user_id"], unique=False)
    op.create_index("ix_time_entries_start_time", "time_entries", ["start_time"], unique=False)
    op.create_index("ix_time_entries_company_id", "time_entries", ["company_id"], unique=False)
    op.create_index(
        "ix_time_entries_association",
        "time_entries",
        ["association_kind", "association_id"],
        unique=False,
    )
    op.create_index(
        "uq_time_entries_open_per_user",
        "time_entries",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("end_time IS NULL"),
        sqlite_where=sa.text("end_time IS NULL"),
    )

    op.create_table(
        "event_outbox",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("entry_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("idempotency_key", sa.String(), nullable=False),
        sa.Column(
            "payload",
            sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql"),
            nullable=False,
        ),
        sa.Column("processed", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("event_type", "idempotency_key", name="uq_event_outbox_idempotency"),
    )
    op.create_index("ix_event_outbox_user_event", "event_outbox", ["user_id", "event_type"], unique=False)
    op.create_index("ix_event_outbox_processed", "event_outbox", ["processed", "created_at"], unique=False)
    op.create_index(op.f("ix_event_outbox_user_id"), "event_outbox", ["user_id"], unique=False)
    op.create_index(op.f("ix_event_outbox_entry_id"), "event_outbox", ["entry_id"], unique=False)
    op.create_index(op.f("ix_event_outbox_event_type"), "event_outbox", ["event_type"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("event_outbox")
    op.drop_index("uq_time_entries_open_per_user", table_name="time_entries")
    op.drop_table("time_entries")
    op.drop_table("employees")
    op.drop_table("campaigns")
    op.drop_table("tasks")
    op.drop_table("projects")
    op.drop_table("companies")
