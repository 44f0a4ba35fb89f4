"""
Unit tests for model validation: importance clamping, id checks, name normalisation.
"""

import pytest
from pydantic import ValidationError

from graph_memory.models.memory import MemoryRecord, MergeEntityInput, StoreMemoryInput, SweepSummary
from graph_memory.models.validators import clamp_unit, is_valid_memory_id, normalize_aliases, normalize_name


class TestValidators:
    @pytest.mark.parametrize("value,expected", [(-0.5, 0.0), (0.4, 0.4), (1.5, 1.0), ("0.25", 0.25), (float("nan"), 0.0)])
    def test_clamp_unit(self, value, expected):
        assert clamp_unit(value) == expected

    def test_memory_id_format(self):
        assert is_valid_memory_id("3f2b6c1e-8a4d-4e1f-9b7a-2c5d8e9f0a1b")
        assert is_valid_memory_id("3F2B6C1E-8A4D-4E1F-9B7A-2C5D8E9F0A1B")
        assert not is_valid_memory_id("mem-1")
        assert not is_valid_memory_id(None)
        assert not is_valid_memory_id("3f2b6c1e-8a4d-4e1f-9b7a-2c5d8e9f0a1b; DROP")

    def test_normalize_name(self):
        assert normalize_name("  New   York ") == "new york"

    def test_normalize_aliases(self):
        assert normalize_aliases("TS, ts , Tarun S") == ["ts", "tarun s"]
        assert normalize_aliases(None) == []


class TestStoreMemoryInput:
    def test_defaults(self):
        memory = StoreMemoryInput(text="Tarun works at Google")
        assert is_valid_memory_id(memory.id)
        assert memory.category == "other"
        assert memory.extraction_status == "pending"
        assert memory.importance == 0.5

    def test_importance_clamped(self):
        assert StoreMemoryInput(text="x", importance=-2).importance == 0.0

    def test_bad_id_rejected(self):
        with pytest.raises(ValidationError):
            StoreMemoryInput(id="mem-1", text="x")

    def test_bad_category_rejected(self):
        with pytest.raises(ValidationError):
            StoreMemoryInput(text="x", category="urgent")

    def test_params_initialise_lifecycle(self):
        params = StoreMemoryInput(text="x").to_params(now=123.0)
        assert params["created_at"] == params["updated_at"] == 123.0
        assert params["retrieval_count"] == 0
        assert params["extraction_retries"] == 0
        assert params["last_retrieved_at"] is None


def test_entity_name_normalised():
    entity = MergeEntityInput(name=" Google  Inc ", aliases=["GOOG", "goog"])
    assert entity.name == "google inc"
    assert entity.aliases == ["goog"]


def test_blank_entity_name_rejected():
    with pytest.raises(ValidationError):
        MergeEntityInput(name="   ")


def test_memory_record_ignores_extra_fields():
    record = MemoryRecord(id="m1", text="t", importance=3.0, embedding=[0.1])
    assert record.importance == 1.0


def test_sweep_summary_success():
    assert SweepSummary().success
    assert not SweepSummary(errors=["decay: boom"]).success
