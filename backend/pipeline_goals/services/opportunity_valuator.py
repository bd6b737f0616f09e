"""Valuation of a single opportunity into Setup / Recurring / Billing components.

Records may be plain mappings (raw rows) or attribute objects (SQLModel rows).
Numeric inputs are coerced leniently: a malformed value never raises.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional
import logging

logger = logging.getLogger(__name__)

# Horizonte fixo do billing, independente de recurring_months_duration
BILLING_HORIZON_MONTHS = 24

DEFAULT_RECURRING_MONTHS = 24
DEFAULT_DOLAR_RATE = 5.30
DEFAULT_TOTAL_DISCOUNT_PERCENT = 13.0
DEFAULT_CLIENT_DISCOUNT_PERCENT = 4.0


@dataclass(frozen=True)
class MonthlyContribution:
    """Contribuição de uma oportunidade para o mês de fechamento"""
    setup: float = 0.0
    recurring: float = 0.0
    billing: float = 0.0

    @property
    def total(self) -> float:
        return self.setup + self.recurring + self.billing


@dataclass(frozen=True)
class BillingBreakdown:
    margin_percent: float = 0.0
    monthly_margin_brl: float = 0.0
    total: float = 0.0


def read_field(record: Any, name: str, default: Any = None) -> Any:
    """Lê um campo de um dict ou de um objeto com atributos"""
    if isinstance(record, Mapping):
        value = record.get(name, default)
    else:
        value = getattr(record, name, default)
    return default if value is None else value


def to_number(value: Any, default: float = 0.0) -> float:
    """
    Converte um valor para float sem nunca lançar exceção.

    None, strings vazias, não numéricas ou valores não finitos retornam `default`.
    Strings com vírgula decimal ("1500,50") são aceitas.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except (OverflowError, ValueError):
            logger.debug(f"Valor numérico fora do intervalo ignorado: {value!r}")
            return default
    else:
        text = str(value).strip().replace(",", ".")
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            logger.debug(f"Valor numérico inválido ignorado: {value!r}")
            return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return number


def read_flag(record: Any, name: str) -> bool:
    value = read_field(record, name, False)
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "sim")
    return bool(value)


def billing_breakdown(opportunity: Any) -> BillingBreakdown:
    """Calcula a margem de billing (USD -> BRL) em 24 meses"""
    if not read_flag(opportunity, "has_billing"):
        return BillingBreakdown()

    monthly_usd = to_number(read_field(opportunity, "billing_monthly_usd"))
    dolar_rate = to_number(read_field(opportunity, "billing_dolar_rate"), DEFAULT_DOLAR_RATE)
    total_discount = to_number(
        read_field(opportunity, "billing_total_discount_percent"), DEFAULT_TOTAL_DISCOUNT_PERCENT
    )
    client_discount = to_number(
        read_field(opportunity, "billing_client_discount_percent"), DEFAULT_CLIENT_DISCOUNT_PERCENT
    )

    margin_percent = (total_discount - client_discount) / 100
    monthly_margin_brl = monthly_usd * margin_percent * dolar_rate
    return BillingBreakdown(
        margin_percent=margin_percent,
        monthly_margin_brl=monthly_margin_brl,
        total=monthly_margin_brl * BILLING_HORIZON_MONTHS,
    )


def value_opportunity(opportunity: Any) -> MonthlyContribution:
    """Converte os componentes de receita da oportunidade em uma MonthlyContribution"""
    setup = 0.0
    if read_flag(opportunity, "has_setup"):
        setup = to_number(read_field(opportunity, "setup_value"))

    recurring = 0.0
    if read_flag(opportunity, "has_recurring"):
        monthly_value = to_number(read_field(opportunity, "recurring_monthly_value"))
        months = to_number(read_field(opportunity, "recurring_months_duration"), DEFAULT_RECURRING_MONTHS)
        recurring = monthly_value * months

    return MonthlyContribution(
        setup=setup,
        recurring=recurring,
        billing=billing_breakdown(opportunity).total,
    )


def derive_tcv(opportunity: Any) -> float:
    return value_opportunity(opportunity).total


def stored_tcv(opportunity: Any) -> float:
    """TCV persistido (calculated_tcv_brl); ausente ou inválido vale 0"""
    return max(0.0, to_number(read_field(opportunity, "calculated_tcv_brl")))


def find_tcv_mismatches(opportunities, tolerance: float = 0.01) -> list:
    """
    Retorna os ids cujo calculated_tcv_brl diverge da soma dos componentes.

    As duas visões são intencionalmente independentes (totais por estágio usam o
    valor persistido, o gráfico de composição usa os componentes); a divergência
    é apenas reportada.
    """
    mismatches = []
    for opportunity in opportunities:
        difference = abs(stored_tcv(opportunity) - derive_tcv(opportunity))
        if difference > tolerance:
            mismatches.append(read_field(opportunity, "id"))
    return mismatches


def to_optional_number(value: Any) -> Optional[float]:
    """Como to_number, mas preserva a ausência do valor"""
    if value is None:
        return None
    sentinel = object()
    number = to_number(value, default=sentinel)
    return None if number is sentinel else number
