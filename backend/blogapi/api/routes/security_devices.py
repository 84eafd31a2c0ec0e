from typing import List

from fastapi import APIRouter, Depends, Response, status

from blogapi.api.deps import get_auth_flows, get_refresh_context
from blogapi.schemas.auth import DeviceView
from blogapi.services.auth_flows import AuthFlows, RefreshContext
from blogapi.utils.timeutil import as_utc

router = APIRouter(prefix="/security/devices", tags=["security"])


@router.get("", response_model=List[DeviceView])
def list_devices(
    ctx: RefreshContext = Depends(get_refresh_context),
    flows: AuthFlows = Depends(get_auth_flows),
):
    """Active device sessions of the user owning the refresh cookie."""
    return [
        {
            "ip": s.ip,
            "title": s.device_name,
            "lastActiveDate": as_utc(s.issued_at).isoformat(),
            "deviceId": s.device_id,
        }
        for s in flows.list_devices(ctx)
    ]


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def terminate_other_devices(
    ctx: RefreshContext = Depends(get_refresh_context),
    flows: AuthFlows = Depends(get_auth_flows),
):
    flows.terminate_other_devices(ctx)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def terminate_device(
    device_id: str,
    ctx: RefreshContext = Depends(get_refresh_context),
    flows: AuthFlows = Depends(get_auth_flows),
):
    """404 for an unknown device, 403 for someone else's."""
    flows.terminate_device(ctx, device_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
