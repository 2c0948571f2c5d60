from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from catalog.config import settings
from catalog.database import get_db
from catalog.exceptions import AuthenticationError
from catalog.models.user import User
from catalog.schemas.common import ApiResponse, CamelModel, ok
from catalog.services import auth_service
from catalog.services.rate_limit import RateLimiter

router = APIRouter(prefix="/auth", tags=["Auth"])

login_rate_limit = RateLimiter(settings.LOGIN_RATE_LIMIT, settings.LOGIN_RATE_WINDOW_SECONDS, "login")


class LoginRequest(BaseModel):
    email: str
    password: str


class UserOut(CamelModel):
    id: str
    email: str
    created_at: str = ""


class LoginOut(BaseModel):
    token: str
    user: UserOut


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        created_at=user.created_at.isoformat() if user.created_at else "",
    )


def get_current_user(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Dependency: extract user from the ``Authorization: Bearer`` header."""
    if not authorization:
        raise AuthenticationError("Authorization header is required")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise AuthenticationError("Invalid authorization header format. Use: Bearer <token>")
    payload = auth_service.decode_token(parts[1])
    if not payload:
        raise AuthenticationError("Invalid or expired token")
    user = auth_service.get_user_by_id(db, payload.get("sub", ""))
    if not user or not user.active:
        raise AuthenticationError("Invalid or expired token")
    return user


@router.post("/login", response_model=ApiResponse[LoginOut], dependencies=[Depends(login_rate_limit)])
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, data.email, data.password)
    if not user:
        raise AuthenticationError("Invalid email or password")
    token = auth_service.create_access_token(user.id, user.email)
    return ok(LoginOut(token=token, user=_user_out(user)))


@router.get("/me", response_model=ApiResponse[UserOut])
def me(user: User = Depends(get_current_user)):
    return ok(_user_out(user))
