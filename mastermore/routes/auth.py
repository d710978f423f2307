"""Authentication routes."""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, Field
from datetime import timedelta

from mastermore.db.sessions import get_db
from mastermore.models.user import User
from mastermore.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    get_current_user,
    is_admin,
)
from mastermore.core.config import settings
from mastermore.utils.levels import LEVEL_DESCRIPTIONS, accessible_levels, next_level


router = APIRouter(prefix="/auth", tags=["Authentication"])


# Request/Response schemas
class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    name: str
    email: str
    role: str
    level: str


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    level: str
    level_description: Optional[str]
    accessible_levels: List[str]
    next_level: Optional[str]
    is_admin: bool
    created_at: str

    class Config:
        from_attributes = True


def _token_for(user: User) -> TokenResponse:
    access_token = create_access_token(
        data={"sub": str(user.id)},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return TokenResponse(
        access_token=access_token,
        user_id=str(user.id),
        name=user.name,
        email=user.email,
        role=user.role,
        level=user.level,
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new student account.

    - New accounts start at the default student level
    - Returns JWT access token
    """
    existing_user = db.query(User).filter(User.email == request.email).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    user = User(
        name=request.name,
        email=request.email,
        password_hash=get_password_hash(request.password),
        role="student",
        level=settings.DEFAULT_STUDENT_LEVEL,
    )

    db.add(user)
    db.commit()
    db.refresh(user)

    return _token_for(user)


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password."""
    user = db.query(User).filter(User.email == request.email).first()
    if not user or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )

    return _token_for(user)


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """
    Get current authenticated user information.

    Protected endpoint - requires valid JWT token.
    """
    return UserResponse(
        id=str(current_user.id),
        name=current_user.name,
        email=current_user.email,
        role=current_user.role,
        level=current_user.level,
        level_description=LEVEL_DESCRIPTIONS.get(current_user.level),
        accessible_levels=accessible_levels(current_user.level),
        next_level=next_level(current_user.level),
        is_admin=is_admin(current_user),
        created_at=current_user.created_at.isoformat()
    )
