from fastapi import APIRouter, Depends

from ..models import User
from ..schemas import User as UserSchema
from ..utils.auth import get_current_user

router = APIRouter()


@router.get("/me", response_model=UserSchema)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information"""
    return current_user
