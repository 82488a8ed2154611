"""
Stage directory: one pipeline's stages loaded once per request chain.

Provides the stage-id -> label lookup used during enrichment and the
semantic stage-id sets derived from the label classifier.
"""
from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List

from analytics.classifier import StageCategory, classify
from models.pipeline_models import Stage
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


class StageDirectory:
    """Immutable snapshot of a pipeline's stages."""

    def __init__(self, stages: Iterable[Stage], pipeline_id: str = ""):
        self.pipeline_id = pipeline_id
        self._stages: List[Stage] = sorted(stages, key=lambda s: s.display_order)
        self._labels: Dict[str, str] = {s.id: s.label for s in self._stages}

        by_category: Dict[StageCategory, set] = {c: set() for c in StageCategory}
        urgent = set()
        for stage in self._stages:
            result = classify(stage.label)
            for category in result.categories:
                by_category[category].add(stage.id)
            if result.is_urgent:
                urgent.add(stage.id)

        self.won_stage_ids: FrozenSet[str] = frozenset(by_category[StageCategory.WON])
        self.lost_stage_ids: FrozenSet[str] = frozenset(by_category[StageCategory.LOST])
        self.follow_up_stage_ids: FrozenSet[str] = frozenset(by_category[StageCategory.FOLLOW_UP])
        self.confirmed_order_stage_ids: FrozenSet[str] = frozenset(
            by_category[StageCategory.CONFIRMED_ORDER]
        )
        self.urgent_stage_ids: FrozenSet[str] = frozenset(urgent)

    @classmethod
    async def load(cls, source, pipeline_id: str) -> "StageDirectory":
        """Fetch the pipeline's stages from the deal source."""
        stages = await source.get_pipeline_stages(pipeline_id)
        logger.debug("Loaded %d stages for pipeline %s", len(stages), pipeline_id)
        return cls(stages, pipeline_id=pipeline_id)

    @property
    def stages(self) -> List[Stage]:
        return list(self._stages)

    def label_for(self, stage_id: str) -> str:
        """Label of a stage, or '' when the id is not part of this pipeline."""
        return self._labels.get(stage_id or "", "")

    def __contains__(self, stage_id: str) -> bool:
        return stage_id in self._labels

    def __len__(self) -> int:
        return len(self._stages)
