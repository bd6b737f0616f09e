from fastapi import HTTPException, status, Request
from typing import Any
import logging

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def get_current_user_id(request: Request) -> int:
    """
    Identifica o usuário dono dos registros a partir do header X-User-Id.

    A autenticação é feita por um gateway à frente deste serviço; aqui só
    escopamos os dados por usuário.
    """
    raw_user_id = request.headers.get(USER_HEADER)
    if not raw_user_id:
        logger.error(f"No {USER_HEADER} header provided")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing {USER_HEADER} header",
        )

    try:
        user_id = int(raw_user_id)
    except (ValueError, TypeError):
        logger.error(f"Invalid user_id format in header: {raw_user_id}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {USER_HEADER} header",
        )

    if user_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {USER_HEADER} header",
        )
    return user_id


def require_ownership(record: Any, user_id: int, entity_name: str) -> Any:
    """Garante que o registro existe e pertence ao usuário; senão 404"""
    if record is None or getattr(record, "user_id", None) != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{entity_name} not found"
        )
    return record
