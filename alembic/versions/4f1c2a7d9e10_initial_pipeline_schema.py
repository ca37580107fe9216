"""Initial schema for workspaces, audits, plans, assets and job records.

Revision ID: 4f1c2a7d9e10
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "4f1c2a7d9e10"
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
  return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True)


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "users",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=True),
    sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    _created_at(),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

  op.create_table("workspaces", sa.Column("id", sa.String(), nullable=False), sa.Column("name", sa.String(), nullable=False), _created_at(), sa.PrimaryKeyConstraint("id"))

  op.create_table(
    "memberships",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("workspace_id", sa.String(), nullable=False),
    sa.Column("role", sa.String(length=32), nullable=False),
    sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("user_id", "workspace_id", name="ux_memberships_user_workspace"),
  )
  op.create_index(op.f("ix_memberships_user_id"), "memberships", ["user_id"], unique=False)
  op.create_index(op.f("ix_memberships_workspace_id"), "memberships", ["workspace_id"], unique=False)

  op.create_table(
    "subscriptions",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("workspace_id", sa.String(), nullable=False),
    sa.Column("plan_tier", sa.String(length=32), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("workspace_id"),
  )

  op.create_table(
    "business_profiles",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("workspace_id", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("industry", sa.String(), nullable=False),
    sa.Column("website_url", sa.String(), nullable=True),
    sa.Column("main_pain", sa.String(), nullable=True),
    _created_at(),
    sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_business_profiles_workspace_id"), "business_profiles", ["workspace_id"], unique=False)

  op.create_table(
    "audit_runs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("business_profile_id", sa.String(), nullable=False),
    sa.Column("status", sa.String(length=32), nullable=False),
    sa.Column("progress", sa.Integer(), nullable=False),
    sa.Column("overall_score", sa.Integer(), nullable=True),
    sa.Column("root_cause_summary", sa.Text(), nullable=True),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    _created_at(),
    sa.ForeignKeyConstraint(["business_profile_id"], ["business_profiles.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ix_audit_runs_business_status", "audit_runs", ["business_profile_id", "status"], unique=False)

  op.create_table(
    "audit_findings",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("audit_run_id", sa.String(), nullable=False),
    sa.Column("category", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("detail", sa.Text(), nullable=False),
    sa.Column("severity", sa.String(length=32), nullable=False),
    sa.Column("fixable", sa.Boolean(), nullable=False),
    sa.ForeignKeyConstraint(["audit_run_id"], ["audit_runs.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_audit_findings_audit_run_id"), "audit_findings", ["audit_run_id"], unique=False)

  op.create_table(
    "repair_plans",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("business_profile_id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("summary", sa.Text(), nullable=True),
    _created_at(),
    sa.ForeignKeyConstraint(["business_profile_id"], ["business_profiles.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_repair_plans_business_profile_id"), "repair_plans", ["business_profile_id"], unique=False)

  op.create_table(
    "plan_tasks",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("repair_plan_id", sa.String(), nullable=False),
    sa.Column("phase", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("impact", sa.String(), nullable=False),
    sa.Column("time_estimate", sa.String(), nullable=False),
    sa.Column("sort_order", sa.Integer(), nullable=False),
    sa.Column("completed", sa.Boolean(), nullable=False),
    sa.ForeignKeyConstraint(["repair_plan_id"], ["repair_plans.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_plan_tasks_repair_plan_id"), "plan_tasks", ["repair_plan_id"], unique=False)

  op.create_table(
    "assets",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("repair_plan_id", sa.String(), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    _created_at(),
    sa.ForeignKeyConstraint(["repair_plan_id"], ["repair_plans.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_assets_repair_plan_id"), "assets", ["repair_plan_id"], unique=False)

  op.create_table(
    "asset_versions",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("asset_id", sa.String(), nullable=False),
    sa.Column("version", sa.Integer(), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    _created_at(),
    sa.ForeignKeyConstraint(["asset_id"], ["assets.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("asset_id", "version", name="ux_asset_versions_asset_version"),
  )
  op.create_index(op.f("ix_asset_versions_asset_id"), "asset_versions", ["asset_id"], unique=False)

  op.create_table(
    "job_records",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("workspace_id", sa.String(), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("ref_id", sa.String(), nullable=False),
    sa.Column("status", sa.String(length=32), nullable=False),
    sa.Column("progress", sa.Integer(), nullable=False),
    sa.Column("error", sa.Text(), nullable=True),
    sa.Column("result_url", sa.String(), nullable=True),
    _created_at(),
    sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_job_records_workspace_id"), "job_records", ["workspace_id"], unique=False)
  op.create_index("ix_job_records_type_ref", "job_records", ["type", "ref_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  for table in ("job_records", "asset_versions", "assets", "plan_tasks", "repair_plans", "audit_findings", "audit_runs", "business_profiles", "subscriptions", "memberships", "workspaces", "users"):
    op.drop_table(table)
