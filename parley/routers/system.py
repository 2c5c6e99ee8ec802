from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from parley.db import get_db

router = APIRouter(tags=["system"])


@router.get("/health")
def health(db: Session = Depends(get_db)) -> dict[str, str]:
    """Liveness plus a round trip to the database."""
    try:
        db.execute(text("SELECT 1"))
    except OperationalError as e:
        raise HTTPException(status_code=503, detail="Database unavailable") from e
    return {"status": "ok"}
