from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from app.core.auth import AuthUser, get_current_user
from app.core.config import get_settings
from app.core.rbac import ADMIN_ROLES, require_roles
from app.metrics import generate_metrics_payload, metrics_content_type
from app.crm.api import (
    activities_router,
    admissions_router,
    applications_router,
    dropdowns_router,
    events_router,
    leads_router,
    registrations_router,
    students_router,
)

router = APIRouter()
router.include_router(leads_router)
router.include_router(students_router)
router.include_router(applications_router)
router.include_router(admissions_router)
router.include_router(activities_router)
router.include_router(dropdowns_router)
router.include_router(events_router)
router.include_router(registrations_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | None]:
    return {
        "sub": user.sub,
        "role": user.role,
        "branch_id": user.branch_id,
        "region_id": user.region_id,
        "name": user.name,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(require_roles(*ADMIN_ROLES))) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
