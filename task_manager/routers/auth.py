from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..core.auth import CurrentUser, get_current_user
from ..core.database import get_db
from ..schemas.user import LoginRequest, Message, RegisterRequest, Token, UserOut
from ..services.auth_service import AuthService

router = APIRouter(tags=["auth"])


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register(user_in: RegisterRequest, auth: AuthService = Depends(get_auth_service)):
    token = auth.register(user_in.name, user_in.email, user_in.password, user_in.password_confirmation)
    return {"token": token}


@router.post("/login", response_model=Token)
def login(credentials: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    token = auth.login(credentials.email, credentials.password)
    return {"token": token}


@router.post("/logout", response_model=Message)
def logout(
    current_user: CurrentUser = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service)
):
    auth.logout(current_user)
    return {"message": "Logged out"}


@router.get("/user", response_model=UserOut)
def me(current_user: CurrentUser = Depends(get_current_user)):
    return UserOut(id=current_user.user_id, name=current_user.name, email=current_user.email)
