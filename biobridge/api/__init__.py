from fastapi import APIRouter

router = APIRouter()

from . import routes_command, routes_health, routes_ws  # noqa: E402

router.include_router(routes_command.router)
router.include_router(routes_health.router)
router.include_router(routes_ws.router)
