from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..auth import get_current_user_id
from ..schemas import (
    ForgotRequest,
    ForgotResponse,
    MessageOut,
    ProfileOut,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
)
from ..services import Services, get_services

router = APIRouter(
    prefix="/auth",
    tags=["accounts"],
)


def _profile(user) -> ProfileOut:
    return ProfileOut(
        id=user["id"],
        name=user["name"],
        email=user["email"],
        recovery_question=user["recovery_question"],
    )


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=ProfileOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create a new account. The email must not already be registered.",
    responses={
        201: {"description": "Account created"},
        409: {"description": "Email already registered"},
    },
)
def register(payload: RegisterRequest, services: Services = Depends(get_services)) -> ProfileOut:
    """
    Register a new user.
    """
    user = services.directory.register(
        name=payload.name,
        email=payload.email,
        password=payload.password,
        recovery_question=payload.recovery_question,
        recovery_answer=payload.recovery_answer,
    )
    return _profile(user)


# PUBLIC_INTERFACE
@router.post(
    "/forgot",
    response_model=ForgotResponse,
    summary="Get Recovery Question",
    responses={404: {"description": "Email not found"}},
)
def forgot(payload: ForgotRequest, services: Services = Depends(get_services)) -> ForgotResponse:
    """
    Return the recovery question for an account, never the answer.
    """
    return ForgotResponse(question=services.directory.recovery_question(payload.email))


# PUBLIC_INTERFACE
@router.post(
    "/forgot/reset",
    response_model=MessageOut,
    summary="Reset Password",
    description="Replace the password after answering the recovery question.",
    responses={403: {"description": "Incorrect answer"}},
)
def reset_password(payload: ResetPasswordRequest, services: Services = Depends(get_services)) -> MessageOut:
    """
    Reset the password after checking the recovery answer.
    """
    services.directory.reset_password(payload.email, payload.answer, payload.new_password)
    return MessageOut(message="Password updated successfully")


# PUBLIC_INTERFACE
@router.get("/profile", response_model=ProfileOut, summary="Get Profile")
def get_profile(
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> ProfileOut:
    """
    Return the caller's profile, without any secrets.
    """
    return _profile(services.directory.get(user_id))


# PUBLIC_INTERFACE
@router.put(
    "/profile",
    response_model=ProfileOut,
    summary="Update Profile",
    description="Update any subset of name, email, password and recovery question/answer.",
    responses={409: {"description": "Email already in use"}},
)
def update_profile(
    payload: ProfileUpdate,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> ProfileOut:
    """
    Update the caller's profile. Only provided fields change.
    """
    user = services.directory.update_profile(
        user_id,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        recovery_question=payload.recovery_question,
        recovery_answer=payload.recovery_answer,
    )
    return _profile(user)


# PUBLIC_INTERFACE
@router.delete(
    "/profile",
    response_model=MessageOut,
    summary="Delete Account",
    description=(
        "Delete the account with the groups and tasks it owns, and leave every "
        "group it collaborates on. Tasks other users filed in the deleted groups "
        "are kept, ungrouped."
    ),
)
def delete_profile(
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> MessageOut:
    """
    Delete the caller and everything they own.
    """
    services.close_account(user_id)
    return MessageOut(message="Account deleted successfully")
