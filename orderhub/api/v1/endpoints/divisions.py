"""API endpoints for split order completion."""
from fastapi import APIRouter

from orderhub.api.deps import DB
from orderhub.schemas.division import CompletionVerdict, DivisionsWithCompletion
from orderhub.services.division_completion_service import DivisionCompletionService


router = APIRouter()


@router.get("/{original_ref}/completion", response_model=CompletionVerdict)
async def get_completion(original_ref: str, db: DB):
    """
    Completion verdict for an original order (its code or id).

    An unknown reference is not an error: it yields a "no divisions found"
    verdict.
    """
    service = DivisionCompletionService(db)
    return await service.compute_completion(original_ref)


@router.get("/{original_ref}", response_model=DivisionsWithCompletion)
async def get_divisions(original_ref: str, db: DB):
    """Divisions of an original order with the verdict over the same rows."""
    service = DivisionCompletionService(db)
    return await service.get_divisions_with_completion(original_ref)
