"""Service for pipeline stage classification - used by the kanban and the dashboard"""
from dataclasses import dataclass, field, replace, is_dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional
from datetime import datetime
import logging

from pipeline_goals.config import settings
from pipeline_goals.models import OpportunityStatus
from pipeline_goals.services.opportunity_valuator import read_field, stored_tcv, to_optional_number

logger = logging.getLogger(__name__)

STAGE_ORDER = (
    OpportunityStatus.NEGOTIATION,
    OpportunityStatus.FORMAL_AGREEMENT,
    OpportunityStatus.SIGNED_CONTRACT,
)

STAGE_LABELS: Dict[OpportunityStatus, str] = {
    OpportunityStatus.NEGOTIATION: "Em Negociação",
    OpportunityStatus.FORMAL_AGREEMENT: "Acordo Formal",
    OpportunityStatus.SIGNED_CONTRACT: "Contrato Assinado",
}

STAGE_PROBABILITIES: Dict[OpportunityStatus, float] = {
    OpportunityStatus.NEGOTIATION: settings.stage_probability_negotiation,
    OpportunityStatus.FORMAL_AGREEMENT: settings.stage_probability_formal_agreement,
    OpportunityStatus.SIGNED_CONTRACT: settings.stage_probability_signed_contract,
}


@dataclass(frozen=True)
class StageTotals:
    count: int = 0
    total_value: float = 0.0


@dataclass(frozen=True)
class PipelineSummary:
    stages: Dict[OpportunityStatus, StageTotals] = field(default_factory=dict)

    def for_status(self, status: OpportunityStatus) -> StageTotals:
        return self.stages.get(status, StageTotals())

    @property
    def total_negotiation(self) -> float:
        return self.for_status(OpportunityStatus.NEGOTIATION).total_value

    @property
    def total_formal(self) -> float:
        return self.for_status(OpportunityStatus.FORMAL_AGREEMENT).total_value

    @property
    def realized_total(self) -> float:
        return self.for_status(OpportunityStatus.SIGNED_CONTRACT).total_value


def parse_status(value: Any) -> Optional[OpportunityStatus]:
    """Normaliza o status; valores desconhecidos retornam None"""
    if isinstance(value, OpportunityStatus):
        return value
    try:
        return OpportunityStatus(str(value))
    except ValueError:
        return None


def status_of(opportunity: Any) -> Optional[OpportunityStatus]:
    return parse_status(read_field(opportunity, "status"))


def group_by_status(opportunities: Iterable[Any]) -> Dict[OpportunityStatus, List[Any]]:
    """Agrupa as oportunidades nas três colunas do kanban (ordem preservada)"""
    columns: Dict[OpportunityStatus, List[Any]] = {status: [] for status in STAGE_ORDER}
    for opportunity in opportunities:
        status = status_of(opportunity)
        if status is None:
            logger.warning(f"Oportunidade {read_field(opportunity, 'id')} com status desconhecido ignorada")
            continue
        columns[status].append(opportunity)
    return columns


def classify_opportunities(opportunities: Iterable[Any]) -> PipelineSummary:
    """Calcula quantidade e soma de calculated_tcv_brl por estágio"""
    columns = group_by_status(opportunities)
    return PipelineSummary(stages={
        status: StageTotals(
            count=len(items),
            total_value=sum(stored_tcv(o) for o in items),
        )
        for status, items in columns.items()
    })


def compute_gap(annual_target: float, realized_total: float) -> float:
    """Quanto falta para a meta; nunca negativo"""
    return max(0.0, annual_target - realized_total)


def compute_realized_progress(realized_total: float, annual_target: float) -> float:
    """Percentual realizado da meta, limitado a 100 para exibição"""
    if annual_target <= 0:
        return 0.0
    return min(100.0, realized_total / annual_target * 100)


def infer_probability(
    opportunity: Any,
    mapping: Optional[Mapping[OpportunityStatus, float]] = None,
) -> float:
    """Probabilidade explícita da oportunidade ou, na ausência, a padrão do estágio"""
    explicit = to_optional_number(read_field(opportunity, "probability_percent"))
    if explicit is not None:
        return explicit
    mapping = STAGE_PROBABILITIES if mapping is None else mapping
    status = status_of(opportunity)
    return float(mapping.get(status, 0)) if status is not None else 0.0


def change_status(opportunity: Any, new_status: Any) -> Any:
    """
    Move a oportunidade para qualquer estágio.

    A transição é total (qualquer estágio para qualquer estágio, inclusive voltar
    um contrato assinado para negociação). Dicts e dataclasses retornam uma cópia;
    objetos persistidos (SQLModel) são atualizados no lugar.
    """
    status = parse_status(new_status)
    if status is None:
        raise ValueError(f"Status inválido: {new_status!r}")

    if isinstance(opportunity, Mapping):
        updated = dict(opportunity)
        updated["status"] = status
        return updated
    if is_dataclass(opportunity):
        return replace(opportunity, status=status)

    old_status = getattr(opportunity, "status", None)
    opportunity.status = status
    if hasattr(opportunity, "updated_at"):
        opportunity.updated_at = datetime.utcnow()
    logger.info(f"Oportunidade {getattr(opportunity, 'id', None)}: status {old_status} -> {status.value}")
    return opportunity
