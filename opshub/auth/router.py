"""Authentication API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from opshub.auth.schemas import LoginResponse, UserLogin, UserResponse, user_to_response
from opshub.auth.service import AuthService, get_auth_service
from opshub.config import get_settings
from opshub.dependencies import CurrentUser, get_db

router = APIRouter()


def get_service(db: Annotated[Session, Depends(get_db)]) -> AuthService:
    """Get auth service dependency."""
    return get_auth_service(db)


@router.post("/login", response_model=LoginResponse)
async def login(
    data: UserLogin,
    service: Annotated[AuthService, Depends(get_service)],
    response: Response,
):
    """Login with email and password.

    Args:
        data: Login credentials.
        service: Auth service.
        response: FastAPI response object.

    Returns:
        LoginResponse: Access token and user.

    Raises:
        HTTPException: If credentials are invalid or the account is inactive.
    """
    user, token, message = service.login(data)

    if not user or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    response.set_cookie(
        key="access_token",
        value=token.access_token,
        httponly=True,
        secure=get_settings().environment == "production",
        samesite="lax",
        max_age=get_settings().access_token_expire_minutes * 60,
        path="/",
    )
    return LoginResponse(
        message=message,
        token=token,
        user=user_to_response(user),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser):
    """Get the authenticated user.

    Args:
        current_user: The authenticated user.

    Returns:
        UserResponse: Current user.
    """
    return user_to_response(current_user)
