"""Subscription tier table and the module/export gates derived from it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tasknator.jobs.models import ExportFormat
from tasknator.schema.sql import PlanTier, Subscription

ExportAccess = Literal["limited", "full"]


@dataclass(frozen=True)
class PlanLimits:
  businesses: int
  audits_per_month: int
  team_members: int
  exports: ExportAccess


@dataclass(frozen=True)
class PlanConfig:
  tier: PlanTier
  name: str
  price: int
  description: str
  limits: PlanLimits
  modules: tuple[str, ...]
  popular: bool = False


PLAN_CONFIGS: tuple[PlanConfig, ...] = (
  PlanConfig(
    tier=PlanTier.STARTER,
    name="Starter",
    price=9,
    description="Perfect for solo businesses getting started with AI diagnostics",
    limits=PlanLimits(businesses=1, audits_per_month=1, team_members=1, exports="limited"),
    modules=("WEBSITE_FIXER", "SALES_DOCTOR"),
  ),
  PlanConfig(
    tier=PlanTier.PRO,
    name="Pro",
    price=29,
    description="For growing businesses that need the full diagnostic toolkit",
    limits=PlanLimits(businesses=3, audits_per_month=10, team_members=1, exports="full"),
    modules=("WEBSITE_FIXER", "SALES_DOCTOR", "REPUTATION_FIXER", "ADS_REPAIR", "SEO_PLANNER", "CLIENT_RECOVERY"),
    popular=True,
  ),
  PlanConfig(
    tier=PlanTier.AGENCY,
    name="Agency",
    price=79,
    description="For agencies managing multiple client businesses",
    limits=PlanLimits(businesses=25, audits_per_month=100, team_members=25, exports="full"),
    modules=("WEBSITE_FIXER", "SALES_DOCTOR", "REPUTATION_FIXER", "ADS_REPAIR", "SEO_PLANNER", "CLIENT_RECOVERY", "COST_CUTTER"),
  ),
)

# Module that must be unlocked to generate each asset type.
ASSET_TYPE_MODULES: dict[str, str] = {
  "WEBSITE_COPY": "WEBSITE_FIXER",
  "SALES_SCRIPTS": "SALES_DOCTOR",
  "OFFER_PACKAGES": "SALES_DOCTOR",
  "REVIEW_REPLIES": "REPUTATION_FIXER",
  "AD_COPY": "ADS_REPAIR",
  "SEO_PLAN": "SEO_PLANNER",
  "EMAIL_SEQUENCE": "CLIENT_RECOVERY",
  "WINBACK_MESSAGES": "CLIENT_RECOVERY",
  "COST_CHECKLIST": "COST_CUTTER",
}

_EXPORT_FORMATS: dict[ExportAccess, tuple[ExportFormat, ...]] = {"limited": ("zip",), "full": ("pdf", "zip", "csv")}


def get_plan_config(tier: PlanTier) -> PlanConfig:
  """Return the configuration for a tier."""
  for config in PLAN_CONFIGS:
    if config.tier is tier:
      return config
  raise ValueError(f"Unknown plan tier: {tier}")


def can_access_module(tier: PlanTier, module: str) -> bool:
  return module in get_plan_config(tier).modules


def allowed_export_formats(tier: PlanTier) -> tuple[ExportFormat, ...]:
  return _EXPORT_FORMATS[get_plan_config(tier).limits.exports]


async def get_workspace_tier(session: AsyncSession, workspace_id: str) -> PlanTier:
  """Resolve the workspace's tier, defaulting to STARTER without a subscription."""
  result = await session.execute(select(Subscription.plan_tier).where(Subscription.workspace_id == workspace_id))
  tier = result.scalar_one_or_none()
  return tier or PlanTier.STARTER


def require_asset_access(tier: PlanTier, asset_type: str) -> None:
  """Reject asset generation when the tier lacks the owning module."""
  module = ASSET_TYPE_MODULES.get(asset_type)
  if module is None:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown asset type: {asset_type}")
  if not can_access_module(tier, module):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": "UPGRADE_REQUIRED", "feature": "module", "module": module, "tier": tier.value})


def require_export_access(tier: PlanTier, export_format: str) -> None:
  """Reject export formats the tier does not include."""
  if export_format not in allowed_export_formats(tier):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": "UPGRADE_REQUIRED", "feature": "export", "format": export_format, "tier": tier.value})
