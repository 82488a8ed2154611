"""Tests for stage label classification and the stage directory."""

import pytest

from analytics.classifier import Outcome, StageCategory, classify, outcome
from analytics.stage_directory import StageDirectory
from fakes import STAGES, FakeDealSource
from models.pipeline_models import Stage


class TestClassify:
    @pytest.mark.parametrize("label", ["Cierre ganado", "CIERRE GANADO (2024)", "closedwon"])
    def test_won_variants(self, label):
        assert outcome(label) == Outcome.WON

    @pytest.mark.parametrize("label", ["Cierre perdido", "closedlost"])
    def test_lost_variants(self, label):
        assert outcome(label) == Outcome.LOST

    @pytest.mark.parametrize("label", ["", "Nuevo lead", "Seguimiento", "Pedido confirmado"])
    def test_everything_else_is_open(self, label):
        assert outcome(label) == Outcome.OPEN

    def test_won_takes_precedence_over_lost(self):
        assert outcome("cierre ganado / cierre perdido") == Outcome.WON

    def test_follow_up_and_urgent_marker(self):
        assert classify("Seguimiento +14 días").is_urgent is True
        assert classify("Seguimiento + 14").is_urgent is True
        assert classify("Seguimiento").is_urgent is False
        assert classify("Negociación").is_follow_up is True

    def test_urgent_marker_only_applies_to_follow_up(self):
        assert classify("Nuevo +14").is_urgent is False

    def test_confirmed_order(self):
        assert classify("Orden recibida").is_confirmed_order is True
        assert classify("pedido CONFIRMADO").categories == frozenset({StageCategory.CONFIRMED_ORDER})

    def test_idempotent(self):
        for stage in STAGES:
            assert classify(stage.label) == classify(stage.label)


class TestStageDirectory:
    def test_semantic_sets(self):
        d = StageDirectory(STAGES, pipeline_id="default")
        assert d.won_stage_ids == {"won"}
        assert d.lost_stage_ids == {"lost"}
        assert d.follow_up_stage_ids == {"seg", "seg14"}
        assert d.urgent_stage_ids == {"seg14"}
        assert d.confirmed_order_stage_ids == {"conf"}

    def test_stages_sorted_by_display_order(self):
        shuffled = [Stage(id="b", label="B", display_order=2), Stage(id="a", label="A", display_order=1)]
        assert [s.id for s in StageDirectory(shuffled).stages] == ["a", "b"]

    def test_unknown_stage_has_empty_label(self):
        d = StageDirectory(STAGES)
        assert d.label_for("does-not-exist") == ""
        assert d.label_for(None) == ""
        assert "won" in d
        assert len(d) == len(STAGES)

    @pytest.mark.asyncio
    async def test_load_from_source(self):
        d = await StageDirectory.load(FakeDealSource(), "default")
        assert d.pipeline_id == "default"
        assert d.label_for("won") == "Cierre ganado"
