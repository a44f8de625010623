"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter, Depends

from ..core.dependencies import rate_limit, require_user
from ..core.flags import get_flags

router = APIRouter()


# ── Health (no auth) ─────────────────────────────────────────────────

@router.get("/health")
async def health():
    flags = get_flags()
    return {
        "status": "ok",
        "service": "tela",
        "auth_enabled": flags.use_auth,
    }


# ── V1 routes (auth required) ───────────────────────────────────────

from .account import account_router
from .chat import chat_router
from .designs import designs_router
from .files import files_router
from .memory import memory_router
from .tasks import tasks_router

_v1_deps = [Depends(require_user), Depends(rate_limit)]

router.include_router(chat_router, prefix="/v1", dependencies=_v1_deps)
router.include_router(tasks_router, prefix="/v1", dependencies=_v1_deps)
router.include_router(memory_router, prefix="/v1", dependencies=_v1_deps)
router.include_router(designs_router, prefix="/v1", dependencies=_v1_deps)
router.include_router(files_router, prefix="/v1", dependencies=_v1_deps)
router.include_router(account_router, prefix="/v1", dependencies=_v1_deps)
