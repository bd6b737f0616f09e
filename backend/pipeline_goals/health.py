"""
Health check: conexão com o banco e presença das tabelas de pipeline e metas
"""
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from pipeline_goals.database import engine
from pipeline_goals.models import Opportunity, ProfessionalGoal
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

REQUIRED_TABLES = (Opportunity.__tablename__, ProfessionalGoal.__tablename__)


@router.get("/health")
@router.get("/api/health")
async def health_check():
    """Check database connectivity and the pipeline/goal tables"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            existing = set(inspect(conn).get_table_names())
    except SQLAlchemyError as e:
        logger.error(f"Health check falhou: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "disconnected", "error": str(e)},
        )

    missing = [table for table in REQUIRED_TABLES if table not in existing]
    if missing:
        # Banco acessível, mas init_db ainda não rodou
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "connected", "missing_tables": missing},
        )
    return {"status": "healthy", "database": "connected", "service": "pipeline-goals"}
