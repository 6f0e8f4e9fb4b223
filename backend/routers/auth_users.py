import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from auth import REFRESH_TOKEN, get_password_hash, issue_token_pair, load_token_user, verify_password
from csrf import issue_csrf_token, set_csrf_cookie
from database import get_db
from email_workflows import issue_password_reset, reset_password_with_token
from models import User, UserRole
from rate_limit import rate_limit
from schemas import (
    ForgotPasswordRequest,
    RefreshTokenRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from security import require_user

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_response(user: User) -> TokenResponse:
    tokens = issue_token_pair(user)
    return TokenResponse(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        user=UserResponse.model_validate(user),
    )


@router.get("/auth/csrf")
def get_csrf_token():
    token, cookie_value = issue_csrf_token()
    response = JSONResponse({"csrf_token": token}, headers={"Cache-Control": "no-store"})
    set_csrf_cookie(response, cookie_value)
    return response


@router.post("/auth/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    db: Session = Depends(get_db),
    _limit=Depends(rate_limit("login", "register")),
):
    email = user_data.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    new_user = User(
        email=email,
        name=user_data.name,
        role=UserRole.PARTICIPANT,
        hashed_password=get_password_hash(user_data.password),
    )
    try:
        db.add(new_user)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(new_user)
    logger.info("Registered participant %s", new_user.id)
    return _token_response(new_user)


@router.post("/auth/login", response_model=TokenResponse)
def login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
    _limit=Depends(rate_limit("login", "login")),
):
    user = db.query(User).filter(User.email == login_data.email.lower()).first()
    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("Failed login for %s", login_data.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _token_response(user)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: RefreshTokenRequest, db: Session = Depends(get_db)):
    return _token_response(load_token_user(db, request.refresh_token, REFRESH_TOKEN))


@router.get("/auth/me", response_model=UserResponse)
def me(user: User = Depends(require_user)):
    return UserResponse.model_validate(user)


@router.post("/auth/forgot-password")
def forgot_password(
    payload: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    _limit=Depends(rate_limit("login", "forgot-password")),
):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if user:
        try:
            issue_password_reset(db, user)
        except Exception:
            logger.exception("Failed to send password reset email to user %s", user.id)
    # same answer whether or not the account exists
    return {"status": "ok"}


@router.post("/auth/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    user = reset_password_with_token(db, payload.token, payload.new_password)
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired token")
    return {"status": "password_reset"}
