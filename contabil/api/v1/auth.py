from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from contabil.core.security import create_access_token, verify_password
from contabil.db import models
from contabil.db.session import get_db

router = APIRouter(tags=["Auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    role: str


def _authenticate(db: Session, username: str, password: str) -> models.User:
    normalized = username.strip().lower()
    user = (
        db.query(models.User)
        .filter(func.lower(models.User.username) == normalized)
        .first()
    )
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuario ou senha invalidos"
        )
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario inativo")
    return user


def _issue_token(user: models.User) -> dict:
    token = create_access_token({"sub": user.id, "role": user.role})
    return {"access_token": token, "token_type": "bearer", "role": user.role}


@router.post("/auth/login", response_model=LoginResponse, summary="Login JSON (frontend)")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """
    Uso tipico via frontend:
    - POST /api/auth/login
    - body: {"username": "...", "password": "..."}
    """
    user = _authenticate(db, payload.username, payload.password)
    return _issue_token(user)


@router.post(
    "/auth/token",
    response_model=LoginResponse,
    summary="Login para Swagger (OAuth2PasswordBearer)",
)
def login_swagger(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    user = _authenticate(db, form_data.username, form_data.password)
    return _issue_token(user)
