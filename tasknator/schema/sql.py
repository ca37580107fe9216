from __future__ import annotations

import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasknator.core.database import Base
from tasknator.utils.ids import generate_id


class PlanTier(str, Enum):
  STARTER = "STARTER"
  PRO = "PRO"
  AGENCY = "AGENCY"


class MembershipRole(str, Enum):
  OWNER = "OWNER"
  ADMIN = "ADMIN"
  MEMBER = "MEMBER"


class AuditStatus(str, Enum):
  QUEUED = "QUEUED"
  RUNNING = "RUNNING"
  COMPLETED = "COMPLETED"
  FAILED = "FAILED"


class Severity(str, Enum):
  CRITICAL = "CRITICAL"
  HIGH = "HIGH"
  MEDIUM = "MEDIUM"
  LOW = "LOW"
  INFO = "INFO"


class TaskPhase(str, Enum):
  DAY_30 = "DAY_30"
  DAY_60 = "DAY_60"
  DAY_90 = "DAY_90"


class JobRecordStatus(str, Enum):
  QUEUED = "queued"
  RUNNING = "running"
  COMPLETED = "completed"
  FAILED = "failed"


def _enum(enum_cls: type[Enum], name: str) -> SAEnum:
  """Store enums as plain strings so schema changes never need type migrations."""
  return SAEnum(enum_cls, name=name, native_enum=False, length=32, values_callable=lambda members: [member.value for member in members])


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  name: Mapped[str | None] = mapped_column(String, nullable=True)
  is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  memberships: Mapped[list[Membership]] = relationship(back_populates="user")


class Workspace(Base):
  __tablename__ = "workspaces"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  memberships: Mapped[list[Membership]] = relationship(back_populates="workspace")
  subscription: Mapped[Subscription | None] = relationship(back_populates="workspace", uselist=False)


class Membership(Base):
  __tablename__ = "memberships"
  __table_args__ = (UniqueConstraint("user_id", "workspace_id", name="ux_memberships_user_workspace"),)

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  workspace_id: Mapped[str] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
  role: Mapped[MembershipRole] = mapped_column(_enum(MembershipRole, "membership_role"), nullable=False, default=MembershipRole.MEMBER)

  user: Mapped[User] = relationship(back_populates="memberships")
  workspace: Mapped[Workspace] = relationship(back_populates="memberships")


class Subscription(Base):
  __tablename__ = "subscriptions"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  workspace_id: Mapped[str] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, unique=True)
  plan_tier: Mapped[PlanTier] = mapped_column(_enum(PlanTier, "plan_tier"), nullable=False, default=PlanTier.STARTER)
  status: Mapped[str] = mapped_column(String, nullable=False, default="active")
  current_period_end: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

  workspace: Mapped[Workspace] = relationship(back_populates="subscription")


class BusinessProfile(Base):
  __tablename__ = "business_profiles"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  workspace_id: Mapped[str] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  industry: Mapped[str] = mapped_column(String, nullable=False)
  website_url: Mapped[str | None] = mapped_column(String, nullable=True)
  main_pain: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  workspace: Mapped[Workspace] = relationship()
  audit_runs: Mapped[list[AuditRun]] = relationship(back_populates="business_profile")
  repair_plans: Mapped[list[RepairPlan]] = relationship(back_populates="business_profile")


class AuditRun(Base):
  __tablename__ = "audit_runs"
  __table_args__ = (Index("ix_audit_runs_business_status", "business_profile_id", "status"),)

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  business_profile_id: Mapped[str] = mapped_column(ForeignKey("business_profiles.id", ondelete="CASCADE"), nullable=False)
  status: Mapped[AuditStatus] = mapped_column(_enum(AuditStatus, "audit_status"), nullable=False, default=AuditStatus.QUEUED)
  progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  overall_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
  root_cause_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
  started_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  finished_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  business_profile: Mapped[BusinessProfile] = relationship(back_populates="audit_runs")
  findings: Mapped[list[AuditFinding]] = relationship(back_populates="audit_run")


class AuditFinding(Base):
  __tablename__ = "audit_findings"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  audit_run_id: Mapped[str] = mapped_column(ForeignKey("audit_runs.id", ondelete="CASCADE"), nullable=False, index=True)
  category: Mapped[str] = mapped_column(String, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  detail: Mapped[str] = mapped_column(Text, nullable=False)
  severity: Mapped[Severity] = mapped_column(_enum(Severity, "severity"), nullable=False)
  fixable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

  audit_run: Mapped[AuditRun] = relationship(back_populates="findings")


class RepairPlan(Base):
  __tablename__ = "repair_plans"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  business_profile_id: Mapped[str] = mapped_column(ForeignKey("business_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  summary: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  business_profile: Mapped[BusinessProfile] = relationship(back_populates="repair_plans")
  tasks: Mapped[list[PlanTask]] = relationship(back_populates="repair_plan", order_by="PlanTask.sort_order")
  assets: Mapped[list[Asset]] = relationship(back_populates="repair_plan")


class PlanTask(Base):
  __tablename__ = "plan_tasks"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  repair_plan_id: Mapped[str] = mapped_column(ForeignKey("repair_plans.id", ondelete="CASCADE"), nullable=False, index=True)
  phase: Mapped[str] = mapped_column(String, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  impact: Mapped[str] = mapped_column(String, nullable=False, default="")
  time_estimate: Mapped[str] = mapped_column(String, nullable=False, default="")
  sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

  repair_plan: Mapped[RepairPlan] = relationship(back_populates="tasks")


class Asset(Base):
  __tablename__ = "assets"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  repair_plan_id: Mapped[str] = mapped_column(ForeignKey("repair_plans.id", ondelete="CASCADE"), nullable=False, index=True)
  type: Mapped[str] = mapped_column(String, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False, default="")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  repair_plan: Mapped[RepairPlan] = relationship(back_populates="assets")
  versions: Mapped[list[AssetVersion]] = relationship(back_populates="asset", order_by="AssetVersion.version")


class AssetVersion(Base):
  __tablename__ = "asset_versions"
  __table_args__ = (UniqueConstraint("asset_id", "version", name="ux_asset_versions_asset_version"),)

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  asset_id: Mapped[str] = mapped_column(ForeignKey("assets.id", ondelete="CASCADE"), nullable=False, index=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  asset: Mapped[Asset] = relationship(back_populates="versions")


class JobRecord(Base):
  __tablename__ = "job_records"
  __table_args__ = (Index("ix_job_records_type_ref", "type", "ref_id"),)

  id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_id)
  workspace_id: Mapped[str] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
  type: Mapped[str] = mapped_column(String, nullable=False)
  ref_id: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[JobRecordStatus] = mapped_column(_enum(JobRecordStatus, "job_record_status"), nullable=False, default=JobRecordStatus.QUEUED)
  progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  result_url: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  finished_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
