"""API routers."""

from academy_auth.routers.backup_codes import router as backup_codes_router
from academy_auth.routers.health import router as health_router
from academy_auth.routers.security_events import router as security_events_router
from academy_auth.routers.two_factor import router as two_factor_router
from academy_auth.routers.webauthn import router as webauthn_router

__all__ = [
    "health_router",
    "webauthn_router",
    "backup_codes_router",
    "two_factor_router",
    "security_events_router",
]
