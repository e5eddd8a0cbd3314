import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health(request: Request, db: Session = Depends(get_db)):
    """
    Liveness plus a database round-trip. Always 200; "database" says
    whether the ledger store answered.
    """
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        logger.exception("[health] database check failed")
        database = "unavailable"

    rid = getattr(request.state, "request_id", None)
    return {"status": "ok", "database": database, "request_id": rid}
