from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..core.version import get_version_info
from ..utils.dates import utcnow

router = APIRouter()


@router.get("/health")
def health(db: Session = Depends(get_db)) -> dict:
    db.execute(text("SELECT 1"))
    return {"status": "ok", "database": "ok", "timestamp": utcnow().isoformat()}


@router.get("/version")
def version() -> dict[str, str]:
    return get_version_info()
