import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from blogapi.api.deps import get_db_session, get_runtime
from blogapi.container import AuthRuntime
from blogapi.core.errors import NotFound
from blogapi.services.users import UserStore

router = APIRouter(prefix="/testing", tags=["testing"])
logger = logging.getLogger("blog.auth")


@router.delete("/all-data", status_code=status.HTTP_204_NO_CONTENT)
def clear_all_data(runtime: AuthRuntime = Depends(get_runtime), db: Session = Depends(get_db_session)):
    """Wipe users, device sessions and attempts. Not available in production."""
    if runtime.settings.environment == "production":
        raise NotFound()
    runtime.registry(db).reset()
    runtime.throttle(db).reset()
    UserStore(db).reset()
    logger.warning("all_data_cleared")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
