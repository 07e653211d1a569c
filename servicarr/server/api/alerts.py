"""Alert configuration and notification test API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from servicarr.server.api.deps import get_alert_manager
from servicarr.server.core.alerts import AlertManager, infer_request_base_url
from servicarr.server.db.alert_config import save_alert_config
from servicarr.server.db.init import get_db
from servicarr.server.schemas.alert import (
    AlertConfigData,
    NotificationResultResponse,
    ReloadResponse,
    TestNotificationRequest,
)

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


@router.put("/config", response_model=ReloadResponse)
async def update_alert_config(
    config: AlertConfigData,
    db: AsyncSession = Depends(get_db),
    manager: AlertManager = Depends(get_alert_manager),
) -> ReloadResponse:
    """Replace the alert configuration and apply it immediately."""
    await save_alert_config(db, config)
    manager.set_config(config)
    return ReloadResponse(enabled=config.enabled)


@router.post("/reload", response_model=ReloadResponse)
async def reload_alert_config(
    manager: AlertManager = Depends(get_alert_manager),
) -> ReloadResponse:
    """Re-read the alert configuration from the database."""
    config = await manager.reload_config()
    return ReloadResponse(enabled=bool(config and config.enabled))


@router.post("/test", response_model=NotificationResultResponse)
async def send_test_notification(
    body: TestNotificationRequest,
    request: Request,
    manager: AlertManager = Depends(get_alert_manager),
) -> NotificationResultResponse:
    """Send a test notification through one channel.

    Links fall back to this request's base URL when no status page URL
    is configured.
    """
    base_url = infer_request_base_url(request.headers, request.url.scheme)
    result = await manager.send_test_notification(body.channel, base_url)
    if not result.success and manager.config is None:
        raise HTTPException(status_code=400, detail=result.message)
    return NotificationResultResponse.model_validate(result)


@router.get("/status")
async def get_alert_status(
    manager: AlertManager = Depends(get_alert_manager),
) -> dict:
    """Whether alerting is enabled, its usable channels and in-flight deliveries."""
    return manager.summary()
