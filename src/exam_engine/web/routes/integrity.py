"""Admin integrity overview."""

from typing import Any

from fastapi import APIRouter

from exam_engine.web.dependencies import get_engine

router = APIRouter(prefix="/api/integrity", tags=["integrity"])


@router.get("/overview")
def get_overview() -> dict[str, Any]:
    """Integrity status counts and violation breakdown across strict attempts."""
    return get_engine().get_integrity_overview()
