"""Read-only status endpoints under /api for operators of an installation."""

from fastapi import APIRouter, FastAPI

from dialogue_loop.pipeline import LoopStatus, Supervisor


def create_app(supervisor: Supervisor) -> FastAPI:
    router = APIRouter()

    @router.get("/health")
    async def health():
        """Health check."""
        return {"status": "ok"}

    @router.get("/status", response_model=LoopStatus)
    async def status():
        """Controller state, current scene and counters."""
        return supervisor.status()

    app = FastAPI(title="Dialogue Loop")
    app.include_router(router, prefix="/api")
    return app
