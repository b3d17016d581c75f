import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Union

import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .config import Settings, get_settings, settings
from .connections import HostConnection, PlayerConnection
from .game import QuizSession
from .questions import QuestionSource
from .schemas import PublicSessionOut
from .utils import local_ip

logger = logging.getLogger(__name__)


async def _frames(websocket: WebSocket) -> AsyncIterator[Union[str, bytes, None]]:
    """Text or binary payloads until the client goes away."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        yield message.get("text") or message.get("bytes")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    # A missing question file aborts startup
    source = QuestionSource(settings.QUESTIONS_CSV, default_time_limit=settings.DEFAULT_TIME_LIMIT)
    source.load()

    session = QuizSession(source.refresh, questions=source.snapshot(), tick_seconds=settings.TICK_SECONDS)
    app.state.questions = source
    app.state.session = session

    if settings.WATCH_QUESTIONS:
        source.start_watching(session.questions_reloaded, settings.QUESTIONS_POLL_SECONDS)

    logger.info("RobHoot server running on port %d", settings.PORT)
    logger.info("  Local:   http://localhost:%d/host.html", settings.PORT)
    logger.info("  Network: http://%s:%d/play.html", local_ip(), settings.PORT)
    try:
        yield
    finally:
        source.stop_watching()
        session.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="RobHoot", lifespan=lifespan)
    app.state.settings = settings

    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_origin_regex=settings.CORS_ORIGIN_REGEX or None,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/session", response_model=PublicSessionOut)
    async def get_session(request: Request):
        session: QuizSession = request.app.state.session
        return session.public_state()

    @app.websocket("/ws/host")
    async def host_socket(websocket: WebSocket):
        await websocket.accept()
        session: QuizSession = websocket.app.state.session
        conn = HostConnection(websocket)
        await session.host_connected(conn)
        try:
            async for raw in _frames(websocket):
                await session.handle_host_message(conn, raw)
        finally:
            await session.connection_closed(conn)

    @app.websocket("/ws/play")
    async def player_socket(websocket: WebSocket):
        await websocket.accept()
        session: QuizSession = websocket.app.state.session
        conn = PlayerConnection(websocket)
        try:
            async for raw in _frames(websocket):
                await session.handle_player_message(conn, raw)
        finally:
            await session.connection_closed(conn)

    static_dir = Path(settings.STATIC_DIR)
    if static_dir.is_dir():
        # Mounted last so the API and socket routes win
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    else:
        logger.warning("Static directory %s not found, serving API only", static_dir)

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
