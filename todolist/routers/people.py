# routers/people.py — The signed-in user's personal profile
from fastapi import APIRouter, Depends

from todolist.auth import CurrentUser, get_current_user
from todolist.dependencies import get_profile, get_update_profile
from todolist.schemas import PersonUpdate, person_to_out, success
from todolist.usecases import GetProfile, UpdateProfile

router = APIRouter(prefix="/api/v1/people", tags=["People"])


@router.get("/me")
async def get_my_profile(
    user: CurrentUser = Depends(get_current_user),
    usecase: GetProfile = Depends(get_profile),
):
    """Get the profile bound to the signed-in user"""
    person = await usecase.execute(user.id)
    return success(person_to_out(person))


@router.put("/me")
async def update_my_profile(
    body: PersonUpdate,
    user: CurrentUser = Depends(get_current_user),
    usecase: UpdateProfile = Depends(get_update_profile),
):
    """Update name, email, phone or birth date"""
    person = await usecase.execute(user.id, body)
    return success(person_to_out(person), "Profile updated successfully")
