from fastapi import APIRouter, Depends, HTTPException, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from blogapi.api.deps import get_runtime
from blogapi.container import AuthRuntime

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics(request: Request, runtime: AuthRuntime = Depends(get_runtime)) -> Response:
    """
    Prometheus metrics endpoint.

    In production it is hidden unless METRICS_TOKEN is set, and then requires
    `Authorization: Bearer <token>`.
    """
    settings = runtime.settings
    token = settings.metrics_token

    if settings.environment == "production":
        if not token:
            raise HTTPException(status_code=404, detail="Not found")
        auth = request.headers.get("authorization") or ""
        if auth != f"Bearer {token}":
            raise HTTPException(status_code=403, detail="Forbidden")

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
