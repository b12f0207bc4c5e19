from fastapi import APIRouter

from editorial.routers.assignments import assignments_router
from editorial.routers.dashboard import dashboard_router
from editorial.routers.health import health_router
from editorial.routers.notifications import notifications_router
from editorial.routers.plagiarism import plagiarism_router
from editorial.routers.submissions import submissions_router
from editorial.routers.versions import versions_router

main_router = APIRouter()

main_router.include_router(
    submissions_router, prefix="/submissions", tags=["Submissions"]
)
main_router.include_router(
    assignments_router, prefix="/submissions", tags=["Assignments"]
)
main_router.include_router(
    plagiarism_router, prefix="/submissions", tags=["Plagiarism"]
)
main_router.include_router(
    versions_router, prefix="/submissions", tags=["Content Versions"]
)
main_router.include_router(
    notifications_router, prefix="/notifications", tags=["Notifications"]
)
main_router.include_router(dashboard_router, prefix="/dashboard", tags=["Dashboard"])
main_router.include_router(health_router, prefix="/health", tags=["Health Checks"])
