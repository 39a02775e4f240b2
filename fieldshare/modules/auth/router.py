from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from fieldshare.database import get_db
from fieldshare.models import User
from fieldshare.repository import SqlAlchemyFieldRepository
from . import schemas, services

router = APIRouter(prefix="/auth", tags=["Authentication"])


# --- Shared dependencies ---
def get_repository(db: Session = Depends(get_db)) -> SqlAlchemyFieldRepository:
    return SqlAlchemyFieldRepository(db)


def get_current_user(
    x_user_id: str = Header(..., alias="X-User-Id"),
    repository: SqlAlchemyFieldRepository = Depends(get_repository),
) -> User:
    """
    Resolve the caller from the X-User-Id header. Session handling sits in
    front of this service; here we only check the user exists.
    """
    user = repository.get_user(x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


def get_current_user_id(user: User = Depends(get_current_user)) -> str:
    return user.id


@router.post("/register", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
def register(user: schemas.UserCreate, repository: SqlAlchemyFieldRepository = Depends(get_repository)):
    auth_service = services.AuthService(repository)
    return auth_service.register_user(user)


@router.get("/me", response_model=schemas.UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
