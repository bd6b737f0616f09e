from typing import Optional
from datetime import date, datetime, timezone
from fastapi import APIRouter, Depends, Query, Response, status
from sqlmodel import Session, select
from pipeline_goals.config import settings
from pipeline_goals.database import get_session
from pipeline_goals.models import Opportunity
from pipeline_goals.dependencies import get_current_user_id
from pipeline_goals.routers.goals import get_goal_for_year
from pipeline_goals.services.freshness import FetchStamp, RefreshTrigger, should_recompute
from pipeline_goals.services.goal_progress import AggregateView, build_aggregate_view
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@router.get("/nuage", response_model=AggregateView)
async def get_goal_dashboard(
    reference_date: Optional[date] = Query(None, description="Data de referência (padrão: hoje)"),
    last_fetched_at: Optional[datetime] = Query(None, description="Momento do último fetch do cliente"),
    trigger: RefreshTrigger = Query(RefreshTrigger.EXPLICIT_REFRESH),
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Get the revenue goal dashboard (KPIs, composition, quarters and roadmap)"""
    now = datetime.now(timezone.utc)
    stamp = FetchStamp(fetched_at=_as_utc(last_fetched_at)) if last_fetched_at else None
    if not should_recompute(stamp, now, trigger, settings.dashboard_cache_ttl_seconds):
        logger.debug(f"Dashboard de user_id={user_id} ainda fresco, recálculo suprimido ({trigger.value})")
        return Response(status_code=status.HTTP_304_NOT_MODIFIED)

    today = reference_date or date.today()
    goal = get_goal_for_year(session, user_id, today.year)
    opportunities = session.exec(
        select(Opportunity).where(Opportunity.user_id == user_id)
    ).all()

    return build_aggregate_view(list(opportunities), goal, today)
