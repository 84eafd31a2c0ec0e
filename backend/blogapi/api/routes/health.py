from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from blogapi.api.deps import get_db_session, get_runtime
from blogapi.container import AuthRuntime

router = APIRouter(tags=["health"])


@router.get("/health")
def health(
    response: Response,
    runtime: AuthRuntime = Depends(get_runtime),
    db: Session = Depends(get_db_session),
) -> dict:
    """Liveness plus a cheap DB round-trip. 503 when the store is unreachable."""
    checks: dict[str, object] = {}
    ok = True
    try:
        db.execute(text("select 1"))
        checks["db"] = "ok"
    except Exception as e:
        ok = False
        checks["db"] = "error"
        checks["db_error"] = str(e)[:250]

    if not ok:
        response.status_code = 503
    return {
        "status": "ok" if ok else "not_ready",
        "service": "blog-auth",
        "environment": runtime.settings.environment,
        "checks": checks,
        "time": runtime.now().isoformat(),
    }
