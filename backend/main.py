"""
Student Progress Engine - FastAPI Backend
HTTP and WebSocket surface over the progress service
"""

import hmac
import json
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from config import get_config_summary, get_progress_config
from database import db, ensure_progress_tables
from identity import IdentityProvider, IdentityUnavailable, get_identity_provider
from logger import get_logger
from models import HealthStatus, QuizCompletionEvent, ResetRequest, StudyEvent
from notifications import ProgressNotifier, progress_notifier
from progress_service import ProgressService
from progress_store import InMemoryProgressStore, PostgresProgressStore
from results import ErrorKind, Result

VERSION = "1.0.0"

log = get_logger("api")

ERROR_STATUS = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 503,
    ErrorKind.TRANSIENT: 503,
}


def unwrap(result: Result):
    """Value of an Ok, or the matching HTTP error for an Err."""
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=ERROR_STATUS[result.kind],
        detail={"error": result.kind.value, "message": result.detail}
    )


def create_app(
    service: Optional[ProgressService] = None,
    identity_provider: Optional[IdentityProvider] = None,
    notifier: ProgressNotifier = progress_notifier
) -> FastAPI:
    """Build the app. Tests pass their own service; production builds one on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        uses_database = False
        if app.state.service is None:
            config = get_progress_config()
            if config.store_backend == "postgres":
                await db.connect()
                await ensure_progress_tables()
                store = PostgresProgressStore(db)
                uses_database = True
            else:
                store = InMemoryProgressStore()
            app.state.service = ProgressService(store, config=config, notifier=notifier)
        log.info(f"Progress engine started (store={app.state.service.store.name}, version={VERSION})")
        yield
        # Shutdown
        log.info("Progress engine shutting down")
        if uses_database:
            await db.disconnect()

    app = FastAPI(
        title="Student Progress Engine",
        description="XP, levels, streaks and badges for learning events",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.service = service
    app.state.identity = identity_provider or get_identity_provider()
    app.state.notifier = notifier

    # CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


# ============================================
# DEPENDENCIES
# ============================================

def get_service(request: Request) -> ProgressService:
    return request.app.state.service


async def current_user(request: Request) -> str:
    """Authenticated user id from the configured identity provider."""
    try:
        user_id = await request.app.state.identity.resolve(request.headers)
    except IdentityUnavailable as e:
        raise HTTPException(status_code=503, detail={"error": "identity_unavailable", "message": str(e)})
    if not user_id:
        raise HTTPException(status_code=401, detail={"error": "unauthenticated", "message": "No user identity"})
    return user_id


def register_routes(app: FastAPI) -> None:

    # ============================================
    # HEALTH & STATUS
    # ============================================

    @app.get("/health", response_model=HealthStatus)
    @app.get("/api/health", response_model=HealthStatus)
    async def health_check(service: ProgressService = Depends(get_service)):
        """Check API and store wiring."""
        return HealthStatus(status="healthy", version=VERSION, store=service.store.name)

    @app.get("/api/config")
    async def config_summary():
        """Active configuration (secrets reported as present/absent)."""
        return get_config_summary()

    # ============================================
    # PROGRESS
    # ============================================

    @app.get("/api/progress")
    async def get_progress(
        user_id: str = Depends(current_user),
        service: ProgressService = Depends(get_service)
    ):
        """Current progress snapshot (zero state for new users)."""
        progress = unwrap(await service.get_or_create(user_id))
        return progress.to_json()

    @app.get("/api/progress/summary")
    async def get_progress_summary(
        user_id: str = Depends(current_user),
        service: ProgressService = Depends(get_service)
    ):
        """Level progress, average score and recent quiz results."""
        summary = unwrap(await service.get_summary(user_id))
        return summary.to_json()

    @app.post("/api/progress/quiz")
    async def complete_quiz(
        event: QuizCompletionEvent,
        user_id: str = Depends(current_user),
        service: ProgressService = Depends(get_service)
    ):
        """Record a finished quiz; response lists newly unlocked badges."""
        update = unwrap(await service.apply_quiz_event(user_id, event))
        return update.to_json()

    @app.post("/api/progress/flashcards")
    async def study_flashcards(
        event: StudyEvent,
        user_id: str = Depends(current_user),
        service: ProgressService = Depends(get_service)
    ):
        """Mark a flashcard set as studied."""
        progress = unwrap(await service.study_flashcard_set(user_id, event.flashcard_set_id))
        return progress.to_json()

    @app.post("/api/progress/reset")
    async def reset_progress(
        body: Optional[ResetRequest] = None,
        reset_token: str = Header(default="", alias="X-Reset-Token"),
        user_id: str = Depends(current_user),
        service: ProgressService = Depends(get_service)
    ):
        """Wipe the caller's progress. Requires the configured reset token."""
        expected = service.config.reset_token
        if not expected:
            raise HTTPException(status_code=403, detail={"error": "forbidden", "message": "Reset is disabled"})
        if not hmac.compare_digest(reset_token, expected):
            raise HTTPException(status_code=403, detail={"error": "forbidden", "message": "Invalid reset token"})

        strict = body.strict if body else False
        progress = unwrap(await service.reset_progress(user_id, strict=strict))
        return progress.to_json()

    # ============================================
    # BADGES
    # ============================================

    @app.get("/api/badges", response_model=List[dict])
    async def list_badges(
        user_id: str = Depends(current_user),
        service: ProgressService = Depends(get_service)
    ):
        """Every badge with unlock state and progress toward it."""
        catalog = unwrap(await service.get_badge_catalog(user_id))
        return [status.to_json() for status in catalog]

    # ============================================
    # LIVE UPDATES (WebSocket)
    # ============================================

    @app.websocket("/ws/progress")
    async def websocket_progress(websocket: WebSocket):
        """Snapshot on connect, then progress and badge_unlocked messages."""
        try:
            user_id = await websocket.app.state.identity.resolve(websocket.headers)
        except IdentityUnavailable:
            user_id = None
        if not user_id:
            await websocket.close(code=1008)
            return

        service: ProgressService = websocket.app.state.service
        notifier: ProgressNotifier = websocket.app.state.notifier

        await websocket.accept()
        await notifier.register(user_id, websocket)

        try:
            current = await service.get_or_create(user_id)
            if current.ok:
                await websocket.send_json({"type": "progress", "data": current.value.to_json()})

            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    continue

                if isinstance(message, dict) and message.get("command") == "ping":
                    await websocket.send_json({"type": "pong"})

        except WebSocketDisconnect:
            pass
        finally:
            await notifier.unregister(user_id, websocket)


app = create_app()


# ============================================
# RUN SERVER
# ============================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
