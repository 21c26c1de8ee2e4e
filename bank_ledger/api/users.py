"""
User endpoints
"""

from fastapi import APIRouter, Depends, Response, status

from .auth import create_access_token, get_current_user_id, get_ledger_system
from .schemas import LoginRequest, SignUpRequest, TokenResponse, UpdateUserRequest, UserResponse
from ..system import LedgerSystem


router = APIRouter()


@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def sign_up(
    request: SignUpRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Register a new user"""
    user = system.users.create_user(request.name, request.email, request.password)
    return UserResponse.from_user(user)


@router.post("/login", response_model=TokenResponse)
def login(
    request: LoginRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Authenticate user and return JWT token"""
    user = system.users.authenticate(request.email, request.password)
    token, expires_at = create_access_token(user.id, system.config)
    return TokenResponse(access_token=token, expires_at=expires_at)


@router.get("/me", response_model=UserResponse)
def get_me(
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get the authenticated user"""
    return UserResponse.from_user(system.users.get_user(user_id))


@router.patch("/me", response_model=UserResponse)
def update_me(
    request: UpdateUserRequest,
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Change the authenticated user's name or email"""
    return UserResponse.from_user(system.users.update_user(user_id, request.name, request.email))


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_me(
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete the authenticated user and their accounts"""
    system.users.delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
