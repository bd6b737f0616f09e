from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional, List
from datetime import date, datetime
from enum import Enum
from pydantic import field_validator, model_validator


# ==================== PIPELINE MODELS ====================

class OpportunityStatus(str, Enum):
    NEGOTIATION = "negotiation"
    FORMAL_AGREEMENT = "formal_agreement"
    SIGNED_CONTRACT = "signed_contract"


class Opportunity(SQLModel, table=True):
    """Oportunidades do pipeline profissional"""
    __tablename__ = "professional_opportunities"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    client_name: str
    status: OpportunityStatus = Field(default=OpportunityStatus.NEGOTIATION, index=True)
    expected_close_date: Optional[date] = None
    probability_percent: Optional[float] = Field(default=None, ge=0, le=100)
    # Seção A: Setup
    has_setup: bool = Field(default=False)
    setup_value: float = Field(default=0.0)
    # Seção B: Recorrência
    has_recurring: bool = Field(default=False)
    recurring_monthly_value: float = Field(default=0.0)
    recurring_months_duration: int = Field(default=24)
    # Seção C: Billing (USD convertido em margem BRL)
    has_billing: bool = Field(default=False)
    billing_monthly_usd: float = Field(default=0.0)
    billing_dolar_rate: float = Field(default=5.30)
    billing_total_discount_percent: float = Field(default=13.0)
    billing_client_discount_percent: float = Field(default=4.0)
    # TCV calculado (fonte autoritativa para os totais por estágio)
    calculated_tcv_brl: float = Field(default=0.0, ge=0)
    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class OpportunityCreate(SQLModel):
    client_name: str
    status: OpportunityStatus = OpportunityStatus.NEGOTIATION
    expected_close_date: Optional[date] = None
    probability_percent: Optional[float] = Field(default=None, ge=0, le=100)
    has_setup: bool = False
    setup_value: Optional[float] = Field(default=None, ge=0)
    has_recurring: bool = False
    recurring_monthly_value: Optional[float] = Field(default=None, ge=0)
    recurring_months_duration: Optional[int] = Field(default=24, gt=0)
    has_billing: bool = False
    billing_monthly_usd: Optional[float] = Field(default=None, ge=0)
    billing_dolar_rate: Optional[float] = Field(default=5.30, gt=0)
    billing_total_discount_percent: Optional[float] = Field(default=13.0, ge=0, le=100)
    billing_client_discount_percent: Optional[float] = Field(default=4.0, ge=0, le=100)
    calculated_tcv_brl: Optional[float] = Field(default=None, ge=0)  # Se omitido, derivado dos componentes

    @field_validator('client_name')
    @classmethod
    def validate_client_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Nome do Cliente é obrigatório')
        return v.strip()

    @model_validator(mode='after')
    def validate_enabled_sections(self):
        if self.has_setup and self.setup_value is None:
            raise ValueError('Valor do Setup é obrigatório quando Setup está ativado')
        if self.has_recurring and self.recurring_monthly_value is None:
            raise ValueError('Valor Mensal é obrigatório quando Recorrência está ativada')
        if self.has_billing and self.billing_monthly_usd is None:
            raise ValueError('Billing Mensal Estimado (USD) é obrigatório quando Billing está ativado')
        if (
            self.has_billing
            and self.billing_total_discount_percent is not None
            and self.billing_client_discount_percent is not None
            and self.billing_client_discount_percent > self.billing_total_discount_percent
        ):
            raise ValueError('Desconto do Cliente não pode ser maior que o Desconto Total')
        return self


class OpportunityResponse(SQLModel):
    id: int
    user_id: int
    client_name: str
    status: OpportunityStatus
    expected_close_date: Optional[date]
    probability_percent: Optional[float]
    has_setup: bool
    setup_value: float
    has_recurring: bool
    recurring_monthly_value: float
    recurring_months_duration: int
    has_billing: bool
    billing_monthly_usd: float
    billing_dolar_rate: float
    billing_total_discount_percent: float
    billing_client_discount_percent: float
    calculated_tcv_brl: float
    created_at: datetime
    updated_at: datetime


class OpportunityCardResponse(SQLModel):
    """Cartão do kanban: oportunidade + probabilidade efetiva"""
    id: int
    client_name: str
    status: OpportunityStatus
    expected_close_date: Optional[date]
    calculated_tcv_brl: float
    probability: float


class PipelineColumnResponse(SQLModel):
    status: OpportunityStatus
    label: str
    count: int
    total_value: float
    opportunities: List[OpportunityCardResponse]


class ValuationResponse(SQLModel):
    setup: float
    recurring: float
    billing: float
    billing_margin_percent: float
    billing_monthly_margin_brl: float
    total: float


# ==================== GOAL MODELS ====================

class ProfessionalGoal(SQLModel, table=True):
    """Meta anual de TCV (uma por usuário e ano)"""
    __tablename__ = "professional_goals"
    __table_args__ = (UniqueConstraint("user_id", "year", name="uq_professional_goal_user_year"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    year: int = Field(index=True)
    target_tcv_annual: float
    target_q1: Optional[float] = None
    target_q2: Optional[float] = None
    target_q3: Optional[float] = None
    target_q4: Optional[float] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class GoalCreate(SQLModel):
    year: int = Field(ge=2000, le=2100)
    target_tcv_annual: float
    target_q1: Optional[float] = Field(default=None, ge=0)
    target_q2: Optional[float] = Field(default=None, ge=0)
    target_q3: Optional[float] = Field(default=None, ge=0)
    target_q4: Optional[float] = Field(default=None, ge=0)

    @field_validator('target_tcv_annual')
    @classmethod
    def validate_annual_target(cls, v: float) -> float:
        if v is None or v <= 0:
            raise ValueError('Meta Anual deve ser maior que zero')
        return v


class GoalResponse(SQLModel):
    id: int
    user_id: int
    year: int
    target_tcv_annual: float
    target_q1: Optional[float]
    target_q2: Optional[float]
    target_q3: Optional[float]
    target_q4: Optional[float]
    quarters_sum: float
    quarters_difference: float
    quarters_balanced: bool
    created_at: datetime
    updated_at: datetime
