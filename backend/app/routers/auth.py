"""Auth routes: register, login, logout."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    SESSION_TOKEN_HEADER, get_current_user, login_user, logout_user, register_user,
)
from app.dependencies import get_db
from app.models.user import User
from app.schemas.user import UserCreate, UserLogin, UserRead

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserRead, status_code=201)
async def register(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
):
    return await register_user(db, email=body.email, password=body.password, name=body.name)


@router.post("/login")
async def login(
    body: UserLogin,
    db: AsyncSession = Depends(get_db),
):
    user, token = await login_user(db, email=body.email, password=body.password)
    return {"token": token, "user_id": str(user.id)}


@router.post("/logout", status_code=204)
async def logout(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await logout_user(db, token=request.headers.get(SESSION_TOKEN_HEADER))
