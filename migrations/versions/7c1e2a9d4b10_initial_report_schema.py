"""initial_report_schema

Creates the report service tables:
  - organizations, user_profiles     - org membership and roles
  - projects, work_categories        - master data for work items
  - approval_flow_rules              - approval routing per project
  - reports, approvals, comments     - report lifecycle
  - work_items                       - time line items under a report
  - audit_logs                       - append-only audit trail

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-18 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e2a9d4b10'
down_revision = None
branch_labels = None
depends_on = None


def _tz():
    return sa.DateTime(timezone=True)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Organizations / profiles ──────────────────────────────────────────
    if "organizations" not in existing:
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", _tz(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "user_profiles" not in existing:
        op.create_table(
            "user_profiles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=False),
            sa.Column("external_identity_ref", sa.String(length=200), nullable=False),
            sa.Column("display_name", sa.String(length=200), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, comment="user | manager | admin"),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            sa.Column("created_at", _tz(), nullable=True),
            sa.Column("updated_at", _tz(), nullable=True),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("external_identity_ref"),
        )
        op.create_index("ix_user_profiles_org_role", "user_profiles", ["org_id", "role"])

    # ── Projects / categories / routing ───────────────────────────────────
    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", _tz(), nullable=True),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("org_id", "name", name="uq_project_org_name"),
        )
        op.create_index("ix_projects_org_id", "projects", ["org_id"])

    if "work_categories" not in existing:
        op.create_table(
            "work_categories",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("created_at", _tz(), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "name", name="uq_work_category_project_name"),
        )
        op.create_index("ix_work_categories_project_id", "work_categories", ["project_id"])

    if "approval_flow_rules" not in existing:
        op.create_table(
            "approval_flow_rules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("approver_id", sa.Integer(), nullable=False),
            sa.Column("applicant_id", sa.Integer(), nullable=True,
                      comment="NULL = generic rule for every applicant"),
            sa.Column("approval_level", sa.Integer(), nullable=True),
            sa.Column("created_at", _tz(), nullable=True),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["approver_id"], ["user_profiles.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["applicant_id"], ["user_profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_approval_flow_rules_org_id", "approval_flow_rules", ["org_id"])
        op.create_index(
            "ix_approval_flow_rules_project_applicant", "approval_flow_rules",
            ["project_id", "applicant_id"],
        )

    # ── Reports ───────────────────────────────────────────────────────────
    if "reports" not in existing:
        op.create_table(
            "reports",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=False),
            sa.Column("author_id", sa.Integer(), nullable=False),
            sa.Column("report_date", sa.String(length=10), nullable=False, comment="YYYY-MM-DD"),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False,
                      comment="draft | submitted | approved | rejected"),
            sa.Column("working_hours", sa.JSON(), nullable=True,
                      comment="{start_hour, start_minute, end_hour, end_minute}"),
            sa.Column("metadata", sa.JSON(), nullable=False),
            sa.Column("submitted_at", _tz(), nullable=True),
            sa.Column("approved_at", _tz(), nullable=True),
            sa.Column("rejected_at", _tz(), nullable=True),
            sa.Column("rejection_reason", sa.String(length=500), nullable=True),
            sa.Column("last_decided_at", _tz(), nullable=True),
            sa.Column("submission_round", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("version", sa.BigInteger(), nullable=False,
                      comment="epoch ms, exposed as updated_at"),
            sa.Column("created_at", _tz(), nullable=False),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", _tz(), nullable=True),
            sa.Column("deleted_by", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["author_id"], ["user_profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_reports_org_id", "reports", ["org_id"])
        op.create_index("ix_reports_author_id", "reports", ["author_id"])
        op.create_index("ix_reports_is_deleted", "reports", ["is_deleted"])
        op.create_index("ix_reports_org_status_report_date", "reports", ["org_id", "status", "report_date"])
        op.create_index("ix_reports_org_author_id", "reports", ["org_id", "author_id"])
        op.create_index(
            "uq_reports_author_date_active", "reports", ["author_id", "report_date"],
            unique=True,
            sqlite_where=sa.text("is_deleted = 0"),
            postgresql_where=sa.text("is_deleted = false"),
        )

    if "approvals" not in existing:
        op.create_table(
            "approvals",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("report_id", sa.Integer(), nullable=False),
            sa.Column("manager_id", sa.Integer(), nullable=False),
            sa.Column("round", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False,
                      comment="pending | approved | rejected"),
            sa.Column("comment", sa.String(length=1000), nullable=True),
            sa.Column("approved_at", _tz(), nullable=True),
            sa.Column("decided_at", _tz(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_at", _tz(), nullable=False),
            sa.ForeignKeyConstraint(["report_id"], ["reports.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["manager_id"], ["user_profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("report_id", "round", "manager_id", name="uq_approval_round_manager"),
        )
        op.create_index("ix_approvals_report_id", "approvals", ["report_id"])
        op.create_index("ix_approvals_manager_status", "approvals", ["manager_id", "status"])

    if "comments" not in existing:
        op.create_table(
            "comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("report_id", sa.Integer(), nullable=False),
            sa.Column("author_id", sa.Integer(), nullable=True),
            sa.Column("type", sa.String(length=10), nullable=False, comment="user | system | ai"),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("created_at", _tz(), nullable=False),
            sa.Column("updated_at", _tz(), nullable=True),
            sa.ForeignKeyConstraint(["report_id"], ["reports.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["author_id"], ["user_profiles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_comments_report_id", "comments", ["report_id"])
        op.create_index("ix_comments_author_id", "comments", ["author_id"])
        op.create_index("ix_comments_report_type", "comments", ["report_id", "type"])

    if "work_items" not in existing:
        op.create_table(
            "work_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("report_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("work_category_id", sa.Integer(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("duration_minutes", sa.Integer(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_at", _tz(), nullable=True),
            sa.Column("updated_at", _tz(), nullable=True),
            sa.ForeignKeyConstraint(["report_id"], ["reports.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["work_category_id"], ["work_categories.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_work_items_report_id", "work_items", ["report_id"])
        op.create_index("ix_work_items_project_id", "work_items", ["project_id"])

    # ── Audit trail ───────────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("org_id", sa.Integer(), nullable=True),
            sa.Column("actor_id", sa.Integer(), nullable=True, comment="NULL for system entries"),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("created_at", _tz(), nullable=False),
            sa.ForeignKeyConstraint(["org_id"], ["organizations.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["actor_id"], ["user_profiles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_org_id", "audit_logs", ["org_id"])
        op.create_index("idx_audit_org_ts", "audit_logs", ["org_id", "created_at"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])


def downgrade():
    for table in (
        "audit_logs",
        "work_items",
        "comments",
        "approvals",
        "reports",
        "approval_flow_rules",
        "work_categories",
        "projects",
        "user_profiles",
        "organizations",
    ):
        op.drop_table(table)
