"""
Action-plan persistence.

Stores generated per-deal action plans in the Supabase table
``hubspot_action_plans``, one row per (tenant, deal). A stored plan is only
served until its ``expires_at``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from models.pipeline_models import ActionPlan
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import select_one, upsert_row
from scripts.lib.utils import now_utc, parse_ts

logger = setup_logger(__name__)

ACTION_PLANS_TABLE = "hubspot_action_plans"
ON_CONFLICT = "company_id,deal_id"


class ActionPlanStore:
    def __init__(self, client=None):
        self.client = client

    def upsert(self, tenant_id: str, plan: ActionPlan) -> bool:
        data = plan.model_dump(mode="json")
        row = {
            "company_id": tenant_id,
            "deal_id": plan.deal_id,
            "summary": data["summary"],
            "urgency": data["urgency"],
            "next_steps": data["next_steps"],
            "suggested_approach": data["suggested_approach"],
            "risk_assessment": data["risk_assessment"],
            "generated_at": data["generated_at"],
            "expires_at": data["expires_at"],
        }
        ok = upsert_row(ACTION_PLANS_TABLE, row, on_conflict=ON_CONFLICT, client=self.client)
        if ok:
            logger.info("Stored action plan for deal %s (%s)", plan.deal_id, tenant_id)
        return ok

    def get(self, tenant_id: str, deal_id: str, now: Optional[datetime] = None) -> Optional[ActionPlan]:
        """The stored plan for a deal, or None when missing, expired or unreadable."""
        row = select_one(
            ACTION_PLANS_TABLE,
            {"company_id": tenant_id, "deal_id": deal_id},
            client=self.client,
        )
        if not row:
            return None

        expires_at = parse_ts(row.get("expires_at"))
        if expires_at is None or expires_at < (now or now_utc()):
            logger.debug("Action plan for deal %s expired", deal_id)
            return None

        try:
            return ActionPlan(
                deal_id=str(row.get("deal_id", deal_id)),
                summary=row.get("summary") or "",
                urgency=row.get("urgency") or "",
                next_steps=row.get("next_steps") or [],
                suggested_approach=row.get("suggested_approach") or "",
                risk_assessment=row.get("risk_assessment") or "",
                generated_at=row.get("generated_at"),
                expires_at=expires_at,
            )
        except ValidationError as e:
            logger.error("Malformed action plan row for deal %s: %s", deal_id, e)
            return None
