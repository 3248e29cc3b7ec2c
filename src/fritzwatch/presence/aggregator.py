"""Concurrent presence fallback across repeaters.

Every repeater is asked at once; the answers are OR-ed together. Failed
lookups never fail the aggregation, they are handed back separately so the
caller can tell "absent everywhere" from "could not ask anyone".
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from fritzwatch.query.base import DeviceQuery, Endpoint, OutcomeKind, QueryOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassifiedError:
    endpoint: str
    kind: OutcomeKind  # timeout or error
    detail: str | None = None


@dataclass
class AggregateResult:
    present: bool = False
    errors: list[ClassifiedError] = field(default_factory=list)
    answered: int = 0  # endpoints that gave a confident answer

    @property
    def all_failed(self) -> bool:
        return self.answered == 0 and bool(self.errors)

    @property
    def confirmed_absent(self) -> bool:
        return not self.present and self.answered > 0


def reduce_outcomes(results: Iterable[tuple[Endpoint, QueryOutcome]]) -> AggregateResult:
    """Fold per-endpoint outcomes into one result. Order does not matter."""
    aggregate = AggregateResult()
    for endpoint, outcome in results:
        if outcome.succeeded:
            aggregate.answered += 1
            aggregate.present = aggregate.present or outcome.present
        else:
            aggregate.errors.append(ClassifiedError(endpoint.label, outcome.kind, outcome.detail))
    return aggregate


class RepeaterAggregator:
    """Asks every configured repeater whether an identity is active."""

    def __init__(self, query: DeviceQuery, endpoints: Sequence[Endpoint]) -> None:
        self.query = query
        self.endpoints = list(endpoints)

    async def check_any(self, identity: str) -> AggregateResult:
        if not self.endpoints:
            return AggregateResult()

        outcomes = await asyncio.gather(
            *(self.query.query_active(ep, identity) for ep in self.endpoints),
            return_exceptions=True,
        )

        results: list[tuple[Endpoint, QueryOutcome]] = []
        for endpoint, outcome in zip(self.endpoints, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.debug("Repeater %s lookup crashed", endpoint.label, exc_info=outcome)
                outcome = QueryOutcome(OutcomeKind.error, str(outcome) or type(outcome).__name__)
            results.append((endpoint, outcome))

        aggregate = reduce_outcomes(results)
        logger.debug(
            "Repeaters for %s: present=%s answered=%d errors=%d",
            identity,
            aggregate.present,
            aggregate.answered,
            len(aggregate.errors),
        )
        return aggregate
