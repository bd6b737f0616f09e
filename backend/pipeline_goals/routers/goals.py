from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from typing import Optional
from datetime import datetime
from pipeline_goals.database import get_session
from pipeline_goals.models import ProfessionalGoal, GoalCreate, GoalResponse
from pipeline_goals.dependencies import get_current_user_id
from pipeline_goals.services.goal_progress import quarter_targets_balance
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def get_goal_for_year(session: Session, user_id: int, year: int) -> Optional[ProfessionalGoal]:
    return session.exec(
        select(ProfessionalGoal).where(
            ProfessionalGoal.user_id == user_id,
            ProfessionalGoal.year == year
        )
    ).first()


def _to_response(goal: ProfessionalGoal) -> GoalResponse:
    balance = quarter_targets_balance(goal)
    return GoalResponse(
        id=goal.id,
        user_id=goal.user_id,
        year=goal.year,
        target_tcv_annual=goal.target_tcv_annual,
        target_q1=goal.target_q1,
        target_q2=goal.target_q2,
        target_q3=goal.target_q3,
        target_q4=goal.target_q4,
        quarters_sum=balance.quarters_sum,
        quarters_difference=balance.difference,
        quarters_balanced=balance.is_balanced,
        created_at=goal.created_at,
        updated_at=goal.updated_at,
    )


@router.get("/{year}", response_model=GoalResponse)
async def get_goal(
    year: int,
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Get the goal of a year"""
    goal = get_goal_for_year(session, user_id, year)
    if not goal:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No goal defined for {year}"
        )
    return _to_response(goal)


@router.post("", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
async def create_goal(
    goal_data: GoalCreate,
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Create the goal of a year"""
    if get_goal_for_year(session, user_id, goal_data.year):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Goal for {goal_data.year} already exists"
        )

    goal = ProfessionalGoal(user_id=user_id, **goal_data.model_dump())
    session.add(goal)
    session.commit()
    session.refresh(goal)

    logger.info(f"Meta {goal.year} criada para user_id={user_id}: {goal.target_tcv_annual:.2f}")
    return _to_response(goal)


@router.put("/{year}", response_model=GoalResponse)
async def upsert_goal(
    year: int,
    goal_data: GoalCreate,
    session: Session = Depends(get_session),
    user_id: int = Depends(get_current_user_id)
):
    """Create or replace the goal of a year"""
    if goal_data.year != year:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Year in path and body must match"
        )

    goal = get_goal_for_year(session, user_id, year)
    if goal:
        for key, value in goal_data.model_dump().items():
            setattr(goal, key, value)
        goal.updated_at = datetime.utcnow()
    else:
        goal = ProfessionalGoal(user_id=user_id, **goal_data.model_dump())

    session.add(goal)
    session.commit()
    session.refresh(goal)

    balance = quarter_targets_balance(goal)
    if not balance.is_balanced:
        logger.info(
            f"Meta {year} de user_id={user_id}: soma dos quarters difere da meta anual em {balance.difference:.2f}"
        )
    return _to_response(goal)
