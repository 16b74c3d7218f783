from fastapi import APIRouter, Depends

from budget_app.schemas import UserMeResponse
from budget_app.models import User
from budget_app.auth import get_current_user

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserMeResponse)
async def read_current_user(current_user: User = Depends(get_current_user)):
    """Return details for the authenticated user."""
    return UserMeResponse(
        id=current_user.id,
        name=current_user.name,
        email=current_user.email,
        role=current_user.role,
        created_at=current_user.created_at,
        permissions=[p.name for p in current_user.permissions],
    )
