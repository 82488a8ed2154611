"""
HubSpot Integration
====================

Remote deal source for the analytics engine:
- Deal search with filter groups and cursor paging
- Pipeline and stage metadata
- Single-deal reads with associations (companies, line items)
- Company and line-item batch reads

Setup:
1. Create a Private App in HubSpot -> Settings -> Integrations -> Private Apps
2. Set HUBSPOT_API_KEY in .env (or HUBSPOT_API_KEY_<TENANT> per tenant)

Every failure is raised as a typed APIError so report builders can decide
what reaches the user.
"""

import asyncio
import os
import re
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from analytics.config import HUBSPOT_BASE_URL, HUBSPOT_REQUEST_TIMEOUT
from models.pipeline_models import Pipeline, Stage
from scripts.lib.errors import (
    APIAuthError,
    APIError,
    APIRateLimitError,
    APITimeoutError,
    ConfigError,
)
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


def raise_for_status(status: int, body: str, url: str, headers: Optional[Dict[str, str]] = None):
    """Map a non-2xx HubSpot response onto the error hierarchy."""
    if 200 <= status < 300:
        return
    headers = headers or {}
    if status in (401, 403):
        raise APIAuthError(url, status_code=status)
    if status == 429:
        retry_after = headers.get("Retry-After")
        policy = None
        match = re.search(r'"policyName"\s*:\s*"([A-Z_]+)"', body or "")
        if match:
            policy = match.group(1)
        raise APIRateLimitError(
            url,
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            policy=policy,
        )
    raise APIError(
        f"HubSpot returned {status}: {(body or '')[:500]}",
        status_code=status, url=url,
    )


class HubSpotDealSource:
    """HubSpot CRM v3 connector for deals, pipelines and line items."""

    def __init__(self, api_key: Optional[str] = None, base_url: str = HUBSPOT_BASE_URL,
                 timeout: float = HUBSPOT_REQUEST_TIMEOUT):
        self.api_key = api_key if api_key is not None else os.getenv("HUBSPOT_API_KEY")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        """Build authorization headers."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, json_body: dict = None,
                       params: dict = None) -> Dict[str, Any]:
        """Make an authenticated request to the HubSpot API."""
        if not self.is_configured:
            raise ConfigError("HubSpot is not configured: set HUBSPOT_API_KEY in .env",
                              setting="HUBSPOT_API_KEY")

        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, headers=self._headers(),
                                           json=json_body, params=params) as resp:
                    if resp.status >= 300:
                        text = await resp.text()
                        logger.error("HubSpot API %s %s returned %d: %s",
                                     method, path, resp.status, text[:300])
                        raise_for_status(resp.status, text, url, dict(resp.headers))
                    return await resp.json()
        except asyncio.TimeoutError as e:
            raise APITimeoutError(url, self.timeout) from e
        except aiohttp.ClientError as e:
            raise APIError(f"HubSpot connection error: {e}", url=url) from e

    async def search_deals(
        self,
        filter_groups: List[Dict[str, Any]],
        sorts: List[Dict[str, str]],
        properties: Sequence[str],
        limit: int = 100,
        after: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run one page of the deal search. Returns the raw {results, paging} payload."""
        body: Dict[str, Any] = {
            "filterGroups": filter_groups,
            "sorts": sorts,
            "properties": list(properties),
            "limit": limit,
        }
        if after:
            body["after"] = after
        return await self._request("POST", "/crm/v3/objects/deals/search", json_body=body)

    async def get_pipelines(self) -> List[Pipeline]:
        """List deal pipelines."""
        data = await self._request("GET", "/crm/v3/pipelines/deals")
        return [Pipeline(id=str(p.get("id", "")), label=p.get("label", ""))
                for p in data.get("results", [])]

    async def get_pipeline_stages(self, pipeline_id: str) -> List[Stage]:
        """Fetch a pipeline's stages ordered by displayOrder."""
        data = await self._request("GET", f"/crm/v3/pipelines/deals/{pipeline_id}")
        stages = []
        for s in data.get("stages", []):
            meta = s.get("metadata") or {}
            probability = meta.get("probability")
            stages.append(Stage(
                id=str(s.get("id", "")),
                label=s.get("label", ""),
                display_order=s.get("displayOrder") or 0,
                probability=float(probability) if probability not in (None, "") else None,
            ))
        stages.sort(key=lambda st: st.display_order)
        return stages

    async def get_deal_by_id(self, deal_id: str, associations: Sequence[str] = (),
                             properties: Sequence[str] = None) -> Dict[str, Any]:
        """Read one deal, optionally with association ids."""
        params = {}
        if associations:
            params["associations"] = ",".join(associations)
        if properties:
            params["properties"] = ",".join(properties)
        return await self._request("GET", f"/crm/v3/objects/deals/{deal_id}", params=params or None)

    async def get_company(self, company_id: str,
                          properties: Sequence[str] = ("name",)) -> Dict[str, Any]:
        """Read one company."""
        return await self._request(
            "GET", f"/crm/v3/objects/companies/{company_id}",
            params={"properties": ",".join(properties)},
        )

    async def batch_read_line_items(self, ids: Sequence[str],
                                    properties: Sequence[str]) -> List[Dict[str, Any]]:
        """Read up to 100 line items in one call."""
        if not ids:
            return []
        body = {
            "inputs": [{"id": str(i)} for i in ids],
            "properties": list(properties),
        }
        data = await self._request("POST", "/crm/v3/objects/line_items/batch/read", json_body=body)
        return data.get("results", [])

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": "HubSpot",
            "configured": self.is_configured,
            "features": ["deals", "pipelines", "companies", "line_items"],
        }


def tenant_env_key(tenant_id: str) -> str:
    """Environment variable holding a tenant's private-app token."""
    suffix = re.sub(r"[^A-Za-z0-9]+", "_", tenant_id).strip("_").upper()
    return f"HUBSPOT_API_KEY_{suffix}"


def get_deal_source(tenant_id: str) -> HubSpotDealSource:
    """Build a deal source for a tenant, falling back to the shared token."""
    api_key = os.getenv(tenant_env_key(tenant_id)) or os.getenv("HUBSPOT_API_KEY")
    if not api_key:
        raise ConfigError(
            f"No HubSpot token for tenant '{tenant_id}' "
            f"(set {tenant_env_key(tenant_id)} or HUBSPOT_API_KEY)",
            setting=tenant_env_key(tenant_id),
        )
    return HubSpotDealSource(api_key=api_key)
