"""Goal progress calculation - combines the annual goal with realized pipeline revenue.

`build_aggregate_view` is the single entry point used by the dashboard. It is a
pure function of (opportunities, goal, reference_date): nothing is read from
the clock or the database here.
"""
import calendar
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from pipeline_goals.models import OpportunityStatus
from pipeline_goals.services.opportunity_valuator import find_tcv_mismatches, read_field, to_number
from pipeline_goals.services.snapshot import ensure_valid_snapshot
from pipeline_goals.services.status_classifier import (
    STAGE_LABELS,
    STAGE_ORDER,
    classify_opportunities,
    compute_gap,
    compute_realized_progress,
    infer_probability,
)
from pipeline_goals.services.time_bucketer import (
    CompositionRow,
    MONTH_NAMES,
    QUARTER_MONTHS,
    QUARTER_PERIODS,
    composition_by_month,
    quarter_for_month,
    realized_by_month,
    realized_by_quarter,
)

logger = logging.getLogger(__name__)

QUARTER_BALANCE_TOLERANCE = 0.01


# ==================== VIEW MODELS ====================

class StageTotalsView(BaseModel):
    status: OpportunityStatus
    label: str
    count: int
    total_value: float
    probability: float  # padrão do estágio, o mesmo do kanban


class QuarterCard(BaseModel):
    quarter: int
    period: str
    target: float
    realized: float
    progress: float
    is_current: bool


class RoadmapRow(BaseModel):
    month: int
    name: str
    quarter: int
    target: float
    realized: float
    progress: float


class AnnualTotals(BaseModel):
    target: float
    realized: float
    progress: float


class QuarterTargetsBalance(BaseModel):
    quarters_sum: float
    difference: float
    is_balanced: bool


class AggregateView(BaseModel):
    reference_date: date
    year: int
    goal_defined: bool
    annual_target: float
    stages: List[StageTotalsView]
    total_negotiation: float
    total_formal: float
    realized_total: float
    gap: float
    realized_progress: float
    year_progress: float
    is_ahead_of_schedule: bool
    current_quarter: int
    monthly_composition: List[CompositionRow]
    quarters: List[QuarterCard]
    roadmap: List[RoadmapRow]
    annual_totals: AnnualTotals
    tcv_mismatch_ids: List[Any]


# ==================== CALCULATIONS ====================

def round_progress(value: float) -> float:
    """Arredonda para 1 casa decimal (meio para cima)"""
    return math.floor(value * 10 + 0.5) / 10


def _as_date(reference: Any) -> date:
    if isinstance(reference, datetime):
        return reference.date()
    if isinstance(reference, date):
        return reference
    raise TypeError(f"reference_date deve ser date ou datetime, recebido {type(reference).__name__}")


def compute_year_progress(reference: Any) -> float:
    """Percentual do ano transcorrido; o dia de referência conta como transcorrido"""
    today = _as_date(reference)
    days_elapsed = (today - date(today.year, 1, 1)).days + 1
    total_days = 366 if calendar.isleap(today.year) else 365
    return min(100.0, days_elapsed / total_days * 100)


def current_quarter(reference: Any) -> int:
    return quarter_for_month(_as_date(reference).month)


def quarter_target(goal: Any, quarter: int) -> float:
    if goal is None:
        return 0.0
    return to_number(read_field(goal, f"target_q{quarter}"))


def annual_target_of(goal: Any) -> float:
    if goal is None:
        return 0.0
    return to_number(read_field(goal, "target_tcv_annual"))


def quarter_targets_balance(goal: Any) -> QuarterTargetsBalance:
    """Compara a soma dos quarters com a meta anual (não precisam fechar)"""
    quarters_sum = sum(quarter_target(goal, quarter) for quarter in QUARTER_MONTHS)
    difference = annual_target_of(goal) - quarters_sum
    return QuarterTargetsBalance(
        quarters_sum=quarters_sum,
        difference=difference,
        is_balanced=abs(difference) <= QUARTER_BALANCE_TOLERANCE,
    )


def build_quarter_cards(goal: Any, realized: Dict[int, float], highlighted_quarter: int) -> List[QuarterCard]:
    cards = []
    for quarter in QUARTER_MONTHS:
        target = quarter_target(goal, quarter)
        quarter_realized = realized.get(quarter, 0.0)
        cards.append(QuarterCard(
            quarter=quarter,
            period=QUARTER_PERIODS[quarter],
            target=target,
            realized=quarter_realized,
            progress=quarter_realized / target * 100 if target > 0 else 0.0,
            is_current=quarter == highlighted_quarter,
        ))
    return cards


def build_monthly_roadmap(goal: Any, realized: Dict[int, float]) -> List[RoadmapRow]:
    """12 linhas; a meta do quarter é dividida igualmente entre seus 3 meses"""
    rows = []
    for month in range(1, 13):
        quarter = quarter_for_month(month)
        monthly_target = quarter_target(goal, quarter) / 3
        monthly_realized = realized.get(month, 0.0)
        progress = monthly_realized / monthly_target * 100 if monthly_target > 0 else 0.0
        rows.append(RoadmapRow(
            month=month,
            name=MONTH_NAMES[month - 1],
            quarter=quarter,
            target=monthly_target,
            realized=monthly_realized,
            progress=round_progress(progress),
        ))
    return rows


def build_annual_totals(roadmap: List[RoadmapRow]) -> AnnualTotals:
    total_target = math.fsum(row.target for row in roadmap)
    total_realized = math.fsum(row.realized for row in roadmap)
    progress = total_realized / total_target * 100 if total_target > 0 else 0.0
    return AnnualTotals(
        target=total_target,
        realized=total_realized,
        progress=round_progress(progress),
    )


def build_aggregate_view(opportunities: Any, goal: Optional[Any], reference_date: Any) -> AggregateView:
    """
    Recalcula todo o dashboard a partir do snapshot.

    Args:
        opportunities: lista de oportunidades (dicts ou objetos)
        goal: meta do ano de referência, ou None quando ainda não definida
        reference_date: o "hoje" usado para o progresso do ano e o quarter atual

    Returns:
        AggregateView com totais por estágio, gap, progresso, composição mensal,
        quarters, roadmap e totais anuais
    """
    snapshot = ensure_valid_snapshot(opportunities)
    today = _as_date(reference_date)
    goal_defined = goal is not None
    year = today.year

    summary = classify_opportunities(snapshot)
    annual_target = annual_target_of(goal)
    realized_total = summary.realized_total

    realized_progress = compute_realized_progress(realized_total, annual_target)
    year_progress = compute_year_progress(today) if goal_defined else 0.0
    highlighted_quarter = current_quarter(today)

    # Quarters e roadmap usam o mesmo ano: o da data de referência
    goal_year = read_field(goal, "year") if goal_defined else None
    if goal_year is not None and int(to_number(goal_year, year)) != year:
        raise ValueError(f"Meta do ano {goal_year} não corresponde ao ano de referência {year}")
    quarters = build_quarter_cards(goal, realized_by_quarter(snapshot, year), highlighted_quarter)
    roadmap = build_monthly_roadmap(goal, realized_by_month(snapshot, year))

    mismatches = find_tcv_mismatches(snapshot)
    if mismatches:
        logger.warning(
            f"{len(mismatches)} oportunidade(s) com calculated_tcv_brl diferente da soma dos componentes: {mismatches}"
        )

    logger.debug(
        f"Dashboard recalculado: {len(snapshot)} oportunidades, meta={'sim' if goal_defined else 'não'}, "
        f"realizado={realized_total:.2f}, referência={today.isoformat()}"
    )

    return AggregateView(
        reference_date=today,
        year=year,
        goal_defined=goal_defined,
        annual_target=annual_target,
        stages=[
            StageTotalsView(
                status=status,
                label=STAGE_LABELS[status],
                count=summary.for_status(status).count,
                total_value=summary.for_status(status).total_value,
                probability=infer_probability({"status": status}),
            )
            for status in STAGE_ORDER
        ],
        total_negotiation=summary.total_negotiation,
        total_formal=summary.total_formal,
        realized_total=realized_total,
        gap=compute_gap(annual_target, realized_total),
        realized_progress=realized_progress,
        year_progress=year_progress,
        is_ahead_of_schedule=goal_defined and realized_progress > year_progress,
        current_quarter=highlighted_quarter,
        monthly_composition=composition_by_month(snapshot),
        quarters=quarters,
        roadmap=roadmap,
        annual_totals=build_annual_totals(roadmap),
        tcv_mismatch_ids=mismatches,
    )
