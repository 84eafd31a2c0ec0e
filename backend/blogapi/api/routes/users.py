from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from blogapi.api.deps import get_db_session, get_runtime, require_admin
from blogapi.container import AuthRuntime
from blogapi.core.errors import NotFound
from blogapi.schemas.auth import RegistrationRequest, UserView
from blogapi.services.users import UserStore, UsersService
from blogapi.utils.timeutil import as_utc

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(require_admin)])


def _users_service(
    runtime: AuthRuntime = Depends(get_runtime),
    db: Session = Depends(get_db_session),
) -> UsersService:
    return UsersService(UserStore(db), runtime.registry(db))


@router.post("", response_model=UserView, status_code=status.HTTP_201_CREATED)
def create_user(payload: RegistrationRequest, service: UsersService = Depends(_users_service)):
    """Admin-created users skip email confirmation."""
    user = service.create_user(payload.login, payload.email, payload.password, is_confirmed=True)
    return {
        "id": str(user.id),
        "login": user.login,
        "email": user.email,
        "createdAt": as_utc(user.created_at).isoformat(),
    }


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: str, service: UsersService = Depends(_users_service)):
    """Soft delete; every device session of the user goes with it."""
    try:
        uid = int(user_id)
    except ValueError:
        raise NotFound("User not found")
    if not service.delete_user(uid):
        raise NotFound("User not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
