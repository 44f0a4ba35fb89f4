"""
Unit tests for the extraction status state machine.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from graph_memory.graph.errors import InvalidTransition
from graph_memory.services.extraction import ALLOWED_TRANSITIONS, ExtractionTracker, check_transition

MEMORY_ID = "3f2b6c1e-8a4d-4e1f-9b7a-2c5d8e9f0a1b"


@pytest.fixture
def store():
    mock = MagicMock()
    mock.transition_extraction_status = AsyncMock(return_value=True)
    mock.count_by_extraction_status = AsyncMock(return_value={"pending": 2, "complete": 1, "failed": 0, "skipped": 0})
    mock.list_pending_extractions = AsyncMock(return_value=[])
    mock.get_extraction_retries = AsyncMock(return_value=3)
    return mock


@pytest.fixture
def tracker(store):
    return ExtractionTracker(store)


class TestCheckTransition:
    @pytest.mark.parametrize(
        "source,target",
        [("pending", "complete"), ("pending", "failed"), ("pending", "skipped"), ("failed", "pending")],
    )
    def test_allowed(self, source, target):
        check_transition(source, target)

    @pytest.mark.parametrize(
        "source,target",
        [
            ("complete", "pending"),
            ("skipped", "pending"),
            ("failed", "complete"),
            ("pending", "pending"),
            ("unknown", "pending"),
        ],
    )
    def test_rejected(self, source, target):
        with pytest.raises(InvalidTransition):
            check_transition(source, target)

    def test_terminal_states_have_no_exits(self):
        assert ALLOWED_TRANSITIONS["complete"] == frozenset()
        assert ALLOWED_TRANSITIONS["skipped"] == frozenset()


class TestExtractionTracker:
    @pytest.mark.asyncio
    async def test_mark_complete(self, tracker, store):
        assert await tracker.mark_complete(MEMORY_ID) is True
        store.transition_extraction_status.assert_awaited_once_with(
            MEMORY_ID, "pending", "complete", increment_retries=False
        )

    @pytest.mark.asyncio
    async def test_mark_failed_and_skipped(self, tracker, store):
        await tracker.mark_failed(MEMORY_ID)
        await tracker.mark_skipped(MEMORY_ID)
        targets = [c[0][2] for c in store.transition_extraction_status.call_args_list]
        assert targets == ["failed", "skipped"]

    @pytest.mark.asyncio
    async def test_retry_increments_counter(self, tracker, store):
        await tracker.retry(MEMORY_ID)
        store.transition_extraction_status.assert_awaited_once_with(
            MEMORY_ID, "failed", "pending", increment_retries=True
        )

    @pytest.mark.asyncio
    async def test_invalid_transition_never_reaches_store(self, tracker, store):
        with pytest.raises(InvalidTransition):
            await tracker.transition(MEMORY_ID, "complete", "pending")
        store.transition_extraction_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_source_state_returns_false(self, tracker, store):
        store.transition_extraction_status.return_value = False
        assert await tracker.mark_complete(MEMORY_ID) is False

    @pytest.mark.asyncio
    async def test_queries_delegate(self, tracker, store):
        assert (await tracker.count_by_status())["pending"] == 2
        assert await tracker.get_retries(MEMORY_ID) == 3
        await tracker.list_pending(limit=5, agent_id="a1")
        store.list_pending_extractions.assert_awaited_once_with(limit=5, agent_id="a1")
        store.count_by_extraction_status.assert_awaited_once_with(None)
