"""In-memory stand-ins for HubSpot used across the test suite."""

from typing import Any, Dict, List, Optional

from analytics.stage_directory import StageDirectory
from models.pipeline_models import EnrichedDeal, Pipeline, Stage

STAGES = [
    Stage(id="lead", label="Nuevo lead", display_order=0),
    Stage(id="seg", label="Seguimiento", display_order=1),
    Stage(id="seg14", label="Seguimiento +14 días", display_order=2),
    Stage(id="conf", label="Pedido confirmado", display_order=3),
    Stage(id="won", label="Cierre ganado", display_order=4),
    Stage(id="lost", label="Cierre perdido", display_order=5),
]


def directory() -> StageDirectory:
    return StageDirectory(STAGES, pipeline_id="default")


def raw_deal(deal_id: str, stage: str = "lead", amount: Any = "", created: str = "2026-10-01T10:00:00Z",
             **props) -> Dict[str, Any]:
    properties = {"dealname": f"Deal {deal_id}", "dealstage": stage, "amount": amount, "createdate": created}
    properties.update(props)
    return {
        "id": deal_id,
        "properties": properties,
        "createdAt": created,
        "updatedAt": created,
        "archived": False,
    }


def make_deal(deal_id: str, stage: str = "lead", amount: float = 0.0, m2: float = 0.0,
              created: str = "2026-10-01T10:00:00Z", days: int = 0, **fields) -> EnrichedDeal:
    labels = {s.id: s.label for s in STAGES}
    properties = {"createdate": created, **fields.pop("properties", {})}
    return EnrichedDeal(
        id=deal_id,
        properties=properties,
        created_at=created,
        amount=amount,
        stage_id=stage,
        stage_label=labels.get(stage, ""),
        m2_total=m2,
        days_since_creation=days,
        **fields,
    )


class FakeDealSource:
    """Serves deals through the same cursor protocol as the HubSpot search API."""

    def __init__(self, deals: Optional[List[Dict[str, Any]]] = None, stages: Optional[List[Stage]] = None,
                 page_size: int = 100, endless: bool = False):
        self.deals = list(deals or [])
        self.stages = list(stages if stages is not None else STAGES)
        self.page_size = page_size
        self.endless = endless
        self.search_calls: List[Dict[str, Any]] = []
        self.associations: Dict[str, Dict[str, Any]] = {}
        self.companies: Dict[str, str] = {}
        self.line_items: Dict[str, Dict[str, Any]] = {}
        self.line_item_batches: List[List[str]] = []
        self.failing_deals: set = set()
        self.search_error: Optional[Exception] = None

    async def search_deals(self, filter_groups, sorts, properties, limit=100, after=None):
        self.search_calls.append({"filter_groups": filter_groups, "limit": limit, "after": after})
        if self.search_error is not None:
            raise self.search_error

        stage_filter = None
        for group in filter_groups:
            for f in group["filters"]:
                if f["propertyName"] == "dealstage":
                    stage_filter = set(f["values"])
        matching = [d for d in self.deals
                    if stage_filter is None or d["properties"]["dealstage"] in stage_filter]

        size = min(limit, self.page_size)
        offset = int(after or 0)
        page = matching[offset:offset + size]
        data: Dict[str, Any] = {"results": page}
        if self.endless or offset + size < len(matching):
            data["paging"] = {"next": {"after": str(offset + size)}}
        return data

    async def get_pipelines(self):
        return [Pipeline(id="default", label="Ventas")]

    async def get_pipeline_stages(self, pipeline_id):
        return sorted(self.stages, key=lambda s: s.display_order)

    async def get_deal_by_id(self, deal_id, associations=(), properties=None):
        if deal_id in self.failing_deals:
            raise RuntimeError(f"boom {deal_id}")
        return {"id": deal_id, "associations": self.associations.get(deal_id, {})}

    async def get_company(self, company_id, properties=("name",)):
        return {"id": company_id, "properties": {"name": self.companies.get(company_id)}}

    async def batch_read_line_items(self, ids, properties):
        self.line_item_batches.append(list(ids))
        return [self.line_items[i] for i in ids if i in self.line_items]


class RecordingSleep:
    """Awaitable replacement for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds
