"""Run a monitoring entry's citation check across every configured engine."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence

from citewatch.database import get_session, utcnow
from citewatch.models.citation import CitationCheckRecord
from citewatch.models.monitoring import MonitoringEntry
from citewatch.utils.helpers import pick
from citewatch.utils.rate_limiter import FixedDelayThrottle, Throttle

logger = logging.getLogger(__name__)

CheckCapability = Callable[[str, str, str, str], Awaitable[Optional[dict[str, Any]]]]

DEFAULT_ENGINES = ("google", "bing")


def _parse_cited(value: Any) -> bool:
    """Read a cited flag; only booleans and "true"/"false" strings are accepted."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"Unrecognised cited flag: {value!r}")


@dataclass
class EngineResult:
    """Normalised outcome of one successful engine check."""
    engine: str
    is_cited: bool
    citation_position: Optional[int] = None
    answer_text: str = ""
    cited_sources: list[dict[str, Any]] = field(default_factory=list)
    total_sources: int = 0
    recommendations: str = ""

    @classmethod
    def from_response(cls, engine: str, response: dict[str, Any]) -> "EngineResult":
        """Build from a check response using either naming convention."""
        sources = pick(response, "cited_sources", "citedSources", default=[]) or []
        sources = [
            {"title": s.get("title", ""), "link": s.get("link", "")}
            for s in sources if isinstance(s, dict)
        ]
        position = pick(response, "citation_position", "citationPosition")
        return cls(
            engine=str(response.get("engine") or engine),
            is_cited=_parse_cited(pick(response, "is_cited", "isCited")),
            citation_position=int(position) if position is not None else None,
            answer_text=str(pick(response, "ai_answer", "aiAnswer", "answer_text", default="")),
            cited_sources=sources,
            total_sources=int(pick(response, "total_sources", "totalSources", default=len(sources))),
            recommendations=str(pick(response, "recommendations", default="")),
        )


# ----------------------------------------------------------------------
# Reduction strategies
# ----------------------------------------------------------------------

def first_success(results: Sequence[EngineResult]) -> Optional[EngineResult]:
    """The first engine that answered wins; later answers are ignored."""
    return results[0] if results else None


def majority(results: Sequence[EngineResult]) -> Optional[EngineResult]:
    """Take the cited value held by more than half the engines; ties go to the first."""
    if not results:
        return None
    cited = sum(1 for r in results if r.is_cited)
    not_cited = len(results) - cited
    if cited == not_cited:
        return results[0]
    winner = cited > not_cited
    return next(r for r in results if r.is_cited == winner)


def all_required(results: Sequence[EngineResult]) -> Optional[EngineResult]:
    """Cited only when every engine that answered cites the domain."""
    if not results:
        return None
    for result in results:
        if not result.is_cited:
            return result
    return results[0]


REDUCTION_STRATEGIES: dict[str, Callable[[Sequence[EngineResult]], Optional[EngineResult]]] = {
    "first_success": first_success,
    "majority": majority,
    "all_required": all_required,
}


def get_reduction_strategy(name: str):
    try:
        return REDUCTION_STRATEGIES[name]
    except KeyError:
        raise RuntimeError(
            f"Unknown reduction strategy {name!r}; "
            f"expected one of {sorted(REDUCTION_STRATEGIES)}"
        ) from None


class EngineCheckOrchestrator:
    """Check one entry against each engine in order and reduce the results.

    Usage::

        orchestrator = EngineCheckOrchestrator(check=checker, engines=["google", "bing"])
        result = await orchestrator.run(entry)
        if result is None:
            ...  # every engine failed
    """

    def __init__(
        self,
        check: CheckCapability,
        engines: Sequence[str] = DEFAULT_ENGINES,
        throttle: Optional[Throttle] = None,
        strategy: str = "first_success",
        clock: Callable[[], datetime] = utcnow,
    ):
        if not engines:
            raise ValueError("At least one engine must be configured.")
        self._check = check
        self._engines = list(engines)
        self._throttle = throttle if throttle is not None else FixedDelayThrottle(1.0, name="engines")
        self._strategy_name = strategy
        self._reduce = get_reduction_strategy(strategy)
        self._clock = clock

    @property
    def engines(self) -> list[str]:
        return list(self._engines)

    @property
    def strategy(self) -> str:
        return self._strategy_name

    async def run(self, entry: MonitoringEntry) -> Optional[EngineResult]:
        """Return the representative result, or None when every engine failed."""
        results: list[EngineResult] = []
        for idx, engine in enumerate(self._engines):
            if idx > 0:
                await self._throttle.wait()

            result = await self._check_engine(entry, engine)
            if result is None:
                continue
            results.append(result)
            self._save_check_record(entry, result)

        if not results:
            logger.warning(
                "All %d engines failed for entry %s (%r)",
                len(self._engines), entry.id, entry.query,
            )
            return None

        chosen = self._reduce(results)
        logger.info(
            "Entry %s: %d/%d engines answered, %s picked %s (cited=%s)",
            entry.id, len(results), len(self._engines),
            self._strategy_name, chosen.engine, chosen.is_cited,
        )
        return chosen

    async def _check_engine(self, entry: MonitoringEntry, engine: str) -> Optional[EngineResult]:
        try:
            response = await self._check(entry.query, entry.domain, entry.user_id, engine)
        except Exception as exc:
            logger.error("Engine %s check failed for entry %s: %s", engine, entry.id, exc)
            return None
        if not response:
            logger.warning("Engine %s returned no result for entry %s", engine, entry.id)
            return None
        try:
            return EngineResult.from_response(engine, response)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.error("Malformed %s response for entry %s: %s", engine, entry.id, exc)
            return None

    def _save_check_record(self, entry: MonitoringEntry, result: EngineResult) -> None:
        """Persist the immutable check record for one engine answer."""
        try:
            with get_session() as session:
                session.add(CitationCheckRecord(
                    user_id=entry.user_id,
                    query=entry.query,
                    domain=entry.domain,
                    engine=result.engine,
                    is_cited=result.is_cited,
                    answer_text=result.answer_text,
                    cited_sources=result.cited_sources,
                    recommendations=result.recommendations,
                    citation_position=result.citation_position,
                    total_sources=result.total_sources,
                    checked_at=self._clock(),
                ))
            logger.debug("Saved %s check record for entry %s", result.engine, entry.id)
        except Exception as exc:
            logger.error("Failed to save check record for entry %s: %s", entry.id, exc)
