"""Assigns opportunity revenue to calendar months and quarters by expected close date."""
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional
import logging

from pydantic import BaseModel

from pipeline_goals.models import OpportunityStatus
from pipeline_goals.services.opportunity_valuator import read_field, stored_tcv, value_opportunity
from pipeline_goals.services.status_classifier import status_of

logger = logging.getLogger(__name__)

MONTH_NAMES = ("Jan", "Fev", "Mar", "Abr", "Mai", "Jun", "Jul", "Ago", "Set", "Out", "Nov", "Dez")

QUARTER_MONTHS: Dict[int, tuple] = {
    1: (1, 2, 3),
    2: (4, 5, 6),
    3: (7, 8, 9),
    4: (10, 11, 12),
}

QUARTER_PERIODS: Dict[int, str] = {
    1: "Jan-Mar",
    2: "Abr-Jun",
    3: "Jul-Set",
    4: "Out-Dez",
}


class CompositionRow(BaseModel):
    """Mix de receita de um mês do gráfico de composição"""
    month: int
    name: str
    setup: float = 0.0
    recurring: float = 0.0
    billing: float = 0.0

    @property
    def total(self) -> float:
        return self.setup + self.recurring + self.billing


def quarter_for_month(month: int) -> int:
    if not 1 <= month <= 12:
        raise ValueError(f"Mês inválido: {month}")
    return (month - 1) // 3 + 1


def parse_close_date(value: Any) -> Optional[date]:
    """Aceita date, datetime ou string ISO ("2025-02-15", "2025-02-15T10:00:00")"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.warning(f"expected_close_date inválida ignorada: {value!r}")
        return None


def close_date_of(opportunity: Any) -> Optional[date]:
    return parse_close_date(read_field(opportunity, "expected_close_date"))


def composition_by_month(opportunities: Iterable[Any], year: Optional[int] = None) -> List[CompositionRow]:
    """
    Mix de receita (Setup / Recorrência / Billing) por mês de fechamento previsto.

    Considera todas as oportunidades, independente do estágio. Sem `year`, o mês
    é comparado em qualquer ano.
    """
    buckets = {month: [0.0, 0.0, 0.0] for month in range(1, 13)}
    for opportunity in opportunities:
        close_date = close_date_of(opportunity)
        if close_date is None:
            continue
        if year is not None and close_date.year != year:
            continue
        contribution = value_opportunity(opportunity)
        bucket = buckets[close_date.month]
        bucket[0] += contribution.setup
        bucket[1] += contribution.recurring
        bucket[2] += contribution.billing

    return [
        CompositionRow(
            month=month,
            name=MONTH_NAMES[month - 1],
            setup=values[0],
            recurring=values[1],
            billing=values[2],
        )
        for month, values in buckets.items()
    ]


def _signed_in_year(opportunities: Iterable[Any], year: int):
    for opportunity in opportunities:
        if status_of(opportunity) != OpportunityStatus.SIGNED_CONTRACT:
            continue
        close_date = close_date_of(opportunity)
        if close_date is None or close_date.year != year:
            continue
        yield close_date, opportunity


def realized_by_month(opportunities: Iterable[Any], year: int) -> Dict[int, float]:
    """Soma de calculated_tcv_brl dos contratos assinados, por mês do ano"""
    totals = {month: 0.0 for month in range(1, 13)}
    for close_date, opportunity in _signed_in_year(opportunities, year):
        totals[close_date.month] += stored_tcv(opportunity)
    return totals


def realized_by_quarter(opportunities: Iterable[Any], year: int) -> Dict[int, float]:
    """Soma de calculated_tcv_brl dos contratos assinados, por quarter do ano"""
    totals = {quarter: 0.0 for quarter in QUARTER_MONTHS}
    for close_date, opportunity in _signed_in_year(opportunities, year):
        totals[quarter_for_month(close_date.month)] += stored_tcv(opportunity)
    return totals
