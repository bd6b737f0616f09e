"""Advisory freshness guard for dashboard refetches.

The "last fetch" stamp is a plain value owned by the caller and passed in on
every decision, so the aggregation itself stays a pure function.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class RefreshTrigger(str, Enum):
    FOCUS = "focus"  # aba/visão voltou a ter foco
    REMOTE_REFETCH = "remote_refetch"
    LOCAL_MUTATION = "local_mutation"  # create/edit/delete/mudança de status
    EXPLICIT_REFRESH = "explicit_refresh"


# Somente estes gatilhos podem ser suprimidos pelo guard
SUPPRESSIBLE_TRIGGERS = frozenset({RefreshTrigger.FOCUS, RefreshTrigger.REMOTE_REFETCH})


@dataclass(frozen=True)
class FetchStamp:
    fetched_at: datetime
    sequence: int = 0

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at


def should_recompute(
    stamp: Optional[FetchStamp],
    now: datetime,
    trigger: RefreshTrigger = RefreshTrigger.FOCUS,
    ttl_seconds: float = 60,
) -> bool:
    """Decide se um novo fetch + recálculo é necessário"""
    if trigger not in SUPPRESSIBLE_TRIGGERS:
        return True
    if stamp is None:
        return True
    age = stamp.age(now)
    # Relógio retroativo: trata como expirado
    if age < timedelta(0):
        return True
    return age >= timedelta(seconds=ttl_seconds)


def next_stamp(previous: Optional[FetchStamp], now: datetime) -> FetchStamp:
    """Carimbo para uma nova requisição de refresh"""
    sequence = previous.sequence + 1 if previous is not None else 1
    return FetchStamp(fetched_at=now, sequence=sequence)


def is_superseded(current: Optional[FetchStamp], incoming: FetchStamp) -> bool:
    """Um resultado de requisição mais antiga nunca substitui um mais novo"""
    return current is not None and incoming.sequence < current.sequence


def newest_stamp(current: Optional[FetchStamp], incoming: FetchStamp) -> FetchStamp:
    if is_superseded(current, incoming):
        return current
    return incoming
