"""Tests for the multi-engine check orchestrator and reduction strategies."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from citewatch.database import get_session
from citewatch.models import CitationCheckRecord
from citewatch.monitoring.orchestrator import (
    EngineCheckOrchestrator,
    EngineResult,
    all_required,
    first_success,
    get_reduction_strategy,
    majority,
)
from citewatch.utils.rate_limiter import NoThrottle

from conftest import NOW, cited_response, not_cited_response


def _result(engine, cited):
    return EngineResult(engine=engine, is_cited=cited)


def _records():
    with get_session() as session:
        return session.query(CitationCheckRecord).order_by(CitationCheckRecord.id).all()


class TestEngineResult:

    def test_camel_case_response(self):
        result = EngineResult.from_response("google", cited_response(camel=True, position=2))
        assert result.is_cited is True
        assert result.citation_position == 2
        assert result.answer_text.startswith("Example.com")
        assert result.cited_sources[1]["link"] == "https://example.com/guide"
        assert result.total_sources == 2

    def test_snake_case_response(self):
        result = EngineResult.from_response("bing", cited_response("bing", camel=False, position=1))
        assert result.engine == "bing"
        assert result.is_cited is True
        assert result.citation_position == 1

    @pytest.mark.parametrize("flag,expected", [
        ("false", False),
        ("True", True),
        (False, False),
    ])
    def test_cited_flag_parsing(self, flag, expected):
        assert EngineResult.from_response("google", {"isCited": flag}).is_cited is expected

    @pytest.mark.parametrize("flag", ["no", 1, "yes"])
    def test_unrecognised_cited_flag_rejected(self, flag):
        with pytest.raises(ValueError):
            EngineResult.from_response("google", {"is_cited": flag})

    def test_missing_fields_default(self):
        result = EngineResult.from_response("google", {"isCited": False})
        assert result.is_cited is False
        assert result.citation_position is None
        assert result.cited_sources == []
        assert result.engine == "google"


class TestReductionStrategies:

    def test_first_success_keeps_first(self):
        results = [_result("google", False), _result("bing", True)]
        assert first_success(results).engine == "google"

    def test_majority(self):
        results = [_result("a", False), _result("b", True), _result("c", True)]
        chosen = majority(results)
        assert chosen.engine == "b"
        assert chosen.is_cited is True

    def test_majority_tie_goes_to_first(self):
        results = [_result("a", True), _result("b", False)]
        assert majority(results).engine == "a"

    def test_all_required(self):
        assert all_required([_result("a", True), _result("b", True)]).is_cited is True
        chosen = all_required([_result("a", True), _result("b", False)])
        assert chosen.engine == "b"
        assert chosen.is_cited is False

    @pytest.mark.parametrize("strategy", [first_success, majority, all_required])
    def test_empty_results(self, strategy):
        assert strategy([]) is None

    def test_unknown_strategy(self):
        with pytest.raises(RuntimeError):
            get_reduction_strategy("coin_flip")


class TestOrchestratorRun:

    @pytest.mark.asyncio
    async def test_first_successful_engine_wins(self, make_entry):
        entry = make_entry()

        def fake(query, domain, user_id, engine):
            return not_cited_response(engine) if engine == "google" else cited_response(engine)

        check = AsyncMock(side_effect=fake)
        orchestrator = EngineCheckOrchestrator(
            check=check, engines=["google", "bing"], throttle=NoThrottle(), clock=lambda: NOW,
        )
        result = await orchestrator.run(entry)

        assert result.engine == "google"
        assert result.is_cited is False
        assert check.await_count == 2
        records = _records()
        assert [r.engine for r in records] == ["google", "bing"]
        assert [r.is_cited for r in records] == [False, True]

    @pytest.mark.asyncio
    async def test_engine_failure_does_not_abort(self, make_entry):
        entry = make_entry()

        def fake(query, domain, user_id, engine):
            if engine == "google":
                raise ConnectionError("timeout")
            return cited_response(engine)

        orchestrator = EngineCheckOrchestrator(
            check=AsyncMock(side_effect=fake), engines=["google", "bing"], throttle=NoThrottle(),
        )
        result = await orchestrator.run(entry)

        assert result.engine == "bing"
        assert result.is_cited is True
        assert len(_records()) == 1

    @pytest.mark.asyncio
    async def test_all_engines_fail_returns_none(self, make_entry):
        entry = make_entry()
        check = AsyncMock(side_effect=RuntimeError("boom"))
        orchestrator = EngineCheckOrchestrator(
            check=check, engines=["google", "bing"], throttle=NoThrottle(),
        )
        assert await orchestrator.run(entry) is None
        assert check.await_count == 2
        assert _records() == []

    @pytest.mark.asyncio
    async def test_empty_response_counts_as_failure(self, make_entry):
        entry = make_entry()
        orchestrator = EngineCheckOrchestrator(
            check=AsyncMock(return_value=None), engines=["google"], throttle=NoThrottle(),
        )
        assert await orchestrator.run(entry) is None

    @pytest.mark.asyncio
    async def test_throttle_between_engines_only(self, make_entry, mock_check):
        entry = make_entry()
        throttle = MagicMock()
        throttle.wait = AsyncMock()
        orchestrator = EngineCheckOrchestrator(
            check=mock_check, engines=["google", "bing", "perplexity"], throttle=throttle,
        )
        await orchestrator.run(entry)
        assert throttle.wait.await_count == 2

    @pytest.mark.asyncio
    async def test_record_fields(self, make_entry, mock_check):
        entry = make_entry(query="crm software", domain="example.com", user_id="user-9")
        orchestrator = EngineCheckOrchestrator(
            check=mock_check, engines=["google"], throttle=NoThrottle(), clock=lambda: NOW,
        )
        await orchestrator.run(entry)

        record = _records()[0]
        assert record.user_id == "user-9"
        assert record.query == "crm software"
        assert record.engine == "google"
        assert record.is_cited is True
        assert record.citation_position == 2
        assert record.cited_sources[1] == {"title": "Example", "link": "https://example.com/guide"}
        mock_check.assert_awaited_once_with("crm software", "example.com", "user-9", "google")

    @pytest.mark.asyncio
    async def test_majority_strategy_configured(self, make_entry):
        entry = make_entry()

        def fake(query, domain, user_id, engine):
            return not_cited_response(engine) if engine == "a" else cited_response(engine)

        orchestrator = EngineCheckOrchestrator(
            check=AsyncMock(side_effect=fake), engines=["a", "b", "c"],
            throttle=NoThrottle(), strategy="majority",
        )
        result = await orchestrator.run(entry)
        assert result.is_cited is True
        assert result.engine == "b"

    def test_requires_engines(self, mock_check):
        with pytest.raises(ValueError):
            EngineCheckOrchestrator(check=mock_check, engines=[])

    @pytest.mark.asyncio
    async def test_malformed_cited_flag_counts_as_failure(self, make_entry):
        entry = make_entry()

        def fake(query, domain, user_id, engine):
            if engine == "google":
                return {"isCited": "maybe"}
            return {"is_cited": "false", "engine": engine}

        orchestrator = EngineCheckOrchestrator(
            check=AsyncMock(side_effect=fake), engines=["google", "bing"], throttle=NoThrottle(),
        )
        result = await orchestrator.run(entry)

        assert result.engine == "bing"
        assert result.is_cited is False
        assert [r.engine for r in _records()] == ["bing"]
