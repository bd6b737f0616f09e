from typing import List, Optional, Dict, Any
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlmodel import Session, select
from pipeline_goals.database import get_session
from pipeline_goals.models import (
    Opportunity, OpportunityCreate, OpportunityResponse, OpportunityStatus,
    OpportunityCardResponse, PipelineColumnResponse, ValuationResponse,
)
from pipeline_goals.dependencies import get_current_user_id, require_ownership
from pipeline_goals.services.opportunity_valuator import (
    DEFAULT_CLIENT_DISCOUNT_PERCENT,
    DEFAULT_DOLAR_RATE,
    DEFAULT_RECURRING_MONTHS,
    DEFAULT_TOTAL_DISCOUNT_PERCENT,
    billing_breakdown,
    derive_tcv,
    value_opportunity,
)
from pipeline_goals.services.status_classifier import (
    STAGE_LABELS,
    change_status,
    classify_opportunities,
    group_by_status,
    infer_probability,
)
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def _sanitize_payload(data: OpportunityCreate) -> Dict[str, Any]:
    """
    Mapeia o payload para os campos persistidos.

    Seções desativadas gravam zero (nunca null); taxas ausentes recebem o padrão.
    Contrato assinado sempre grava probabilidade 100.
    """
    values = {
        "client_name": data.client_name,
        "status": data.status,
        "expected_close_date": data.expected_close_date,
        "probability_percent": 100.0 if data.status == OpportunityStatus.SIGNED_CONTRACT else data.probability_percent,
        "has_setup": data.has_setup,
        "setup_value": (data.setup_value or 0.0) if data.has_setup else 0.0,
        "has_recurring": data.has_recurring,
        "recurring_monthly_value": (data.recurring_monthly_value or 0.0) if data.has_recurring else 0.0,
        "recurring_months_duration": data.recurring_months_duration or DEFAULT_RECURRING_MONTHS,
        "has_billing": data.has_billing,
        "billing_monthly_usd": (data.billing_monthly_usd or 0.0) if data.has_billing else 0.0,
        "billing_dolar_rate": data.billing_dolar_rate or DEFAULT_DOLAR_RATE,
        "billing_total_discount_percent": (
            data.billing_total_discount_percent
            if data.billing_total_discount_percent is not None
            else DEFAULT_TOTAL_DISCOUNT_PERCENT
        ),
        "billing_client_discount_percent": (
            data.billing_client_discount_percent
            if data.billing_client_discount_percent is not None
            else DEFAULT_CLIENT_DISCOUNT_PERCENT
        ),
    }
    # TCV calculado a partir dos componentes quando não informado; nunca negativo
    if data.calculated_tcv_brl is not None:
        values["calculated_tcv_brl"] = data.calculated_tcv_brl
    else:
        values["calculated_tcv_brl"] = max(0.0, derive_tcv(values))
    return values


def _get_owned_opportunity(session: Session, opportunity_id: int, user_id: int) -> Opportunity:
    opportunity = session.get(Opportunity, opportunity_id)
    return require_ownership(opportunity, user_id, "Opportunity")


@router.post("", response_model=OpportunityResponse, status_code=status.HTTP_201_CREATED)
async def create_opportunity(
    opportunity_data: OpportunityCreate,
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Create a new opportunity"""
    opportunity = Opportunity(**_sanitize_payload(opportunity_data), user_id=user_id)
    session.add(opportunity)
    session.commit()
    session.refresh(opportunity)

    logger.info(
        f"Oportunidade criada: id={opportunity.id}, user_id={user_id}, "
        f"status={opportunity.status.value}, tcv={opportunity.calculated_tcv_brl:.2f}"
    )
    return opportunity


@router.post("/valuation", response_model=ValuationResponse)
async def preview_valuation(
    opportunity_data: OpportunityCreate,
    user_id: int = Depends(get_current_user_id)
):
    """Preview the TCV calculator for an unsaved opportunity"""
    values = _sanitize_payload(opportunity_data)
    contribution = value_opportunity(values)
    billing = billing_breakdown(values)
    return ValuationResponse(
        setup=contribution.setup,
        recurring=contribution.recurring,
        billing=contribution.billing,
        billing_margin_percent=billing.margin_percent * 100,
        billing_monthly_margin_brl=billing.monthly_margin_brl,
        total=contribution.total,
    )


@router.get("", response_model=List[OpportunityResponse])
async def get_opportunities(
    status_filter: Optional[OpportunityStatus] = Query(None, description="Filter by status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Get all opportunities for the current user"""
    query = select(Opportunity).where(Opportunity.user_id == user_id)
    if status_filter:
        query = query.where(Opportunity.status == status_filter)

    # Ordenar por data de criação (mais recente primeiro)
    query = query.order_by(Opportunity.created_at.desc(), Opportunity.id.desc())
    query = query.offset(skip).limit(limit)
    return session.exec(query).all()


@router.get("/pipeline", response_model=List[PipelineColumnResponse])
async def get_pipeline(
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Get the kanban columns (negotiation, formal agreement, signed contract)"""
    opportunities = session.exec(
        select(Opportunity)
        .where(Opportunity.user_id == user_id)
        .order_by(Opportunity.created_at.desc(), Opportunity.id.desc())
    ).all()

    summary = classify_opportunities(opportunities)
    columns = []
    for column_status, items in group_by_status(opportunities).items():
        totals = summary.for_status(column_status)
        columns.append(PipelineColumnResponse(
            status=column_status,
            label=STAGE_LABELS[column_status],
            count=totals.count,
            total_value=totals.total_value,
            opportunities=[
                OpportunityCardResponse(
                    id=opp.id,
                    client_name=opp.client_name,
                    status=opp.status,
                    expected_close_date=opp.expected_close_date,
                    calculated_tcv_brl=opp.calculated_tcv_brl,
                    probability=infer_probability(opp),
                )
                for opp in items
            ],
        ))
    return columns


@router.get("/{opportunity_id}", response_model=OpportunityResponse)
async def get_opportunity(
    opportunity_id: int,
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Get a specific opportunity"""
    return _get_owned_opportunity(session, opportunity_id, user_id)


@router.put("/{opportunity_id}", response_model=OpportunityResponse)
async def update_opportunity(
    opportunity_id: int,
    opportunity_data: OpportunityCreate,
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Update an opportunity"""
    opportunity = _get_owned_opportunity(session, opportunity_id, user_id)

    for key, value in _sanitize_payload(opportunity_data).items():
        setattr(opportunity, key, value)
    opportunity.updated_at = datetime.utcnow()

    session.add(opportunity)
    session.commit()
    session.refresh(opportunity)
    logger.info(f"Oportunidade {opportunity_id} atualizada por user_id={user_id}")
    return opportunity


@router.delete("/{opportunity_id}")
async def delete_opportunity(
    opportunity_id: int,
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Delete an opportunity"""
    opportunity = _get_owned_opportunity(session, opportunity_id, user_id)
    session.delete(opportunity)
    session.commit()
    logger.info(f"Oportunidade {opportunity_id} excluída por user_id={user_id}")
    return {"message": "Opportunity deleted successfully"}


@router.patch("/{opportunity_id}/status", response_model=OpportunityResponse)
async def update_opportunity_status(
    opportunity_id: int,
    new_status: OpportunityStatus,
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Update opportunity status (any stage to any stage)"""
    opportunity = _get_owned_opportunity(session, opportunity_id, user_id)
    old_status = opportunity.status

    change_status(opportunity, new_status)

    # Contrato assinado é sempre 100%; ao sair dele a probabilidade volta a ser a do estágio
    if new_status == OpportunityStatus.SIGNED_CONTRACT:
        opportunity.probability_percent = 100.0
    elif old_status == OpportunityStatus.SIGNED_CONTRACT:
        opportunity.probability_percent = None

    session.add(opportunity)
    session.commit()
    session.refresh(opportunity)
    return opportunity
