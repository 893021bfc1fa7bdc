# chat_api/main.py
import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import config
from .database import init_db, make_engine, make_session_factory, ping
from .errors import ChatError, Forbidden, ValidationError
from .models import MessagePost, MessageRead, Participant, ParticipantCreate
from .stores import Clock, MessageStore, ParticipantStore
from .sweeper import PresenceSweeper

logger = logging.getLogger(__name__)

router = APIRouter()


def get_participants(request: Request) -> ParticipantStore:
    return request.app.state.participants


def get_messages(request: Request) -> MessageStore:
    return request.app.state.messages


@router.post("/participants", status_code=201)
async def register(
    body: ParticipantCreate,
    participants: ParticipantStore = Depends(get_participants),
) -> Participant:
    return await participants.register(body.name)


@router.get("/participants")
async def list_participants(participants: ParticipantStore = Depends(get_participants)) -> list[Participant]:
    return await participants.list()


@router.delete("/participants/{name}")
async def leave(
    name: str,
    user: str = Header(),
    participants: ParticipantStore = Depends(get_participants),
    messages: MessageStore = Depends(get_messages),
):
    if user != name:
        raise Forbidden("participants can only remove themselves")
    removed = await participants.remove(name)
    if removed:
        await messages.announce_leave(name)
    return {"removed": removed}


@router.post("/messages", status_code=201, response_model=MessageRead)
async def post_message(
    body: MessagePost,
    user: str = Header(),
    participants: ParticipantStore = Depends(get_participants),
    messages: MessageStore = Depends(get_messages),
):
    if not await participants.exists(user):
        raise ValidationError(f"sender {user!r} is not registered")
    return await messages.append(user, body)


@router.get("/messages", response_model=list[MessageRead])
async def list_messages(
    user: str = Header(),
    limit: Optional[int] = Query(default=None, gt=0),
    messages: MessageStore = Depends(get_messages),
):
    return await messages.recent(user, limit)


@router.post("/status")
async def heartbeat(
    user: str = Header(),
    participants: ParticipantStore = Depends(get_participants),
):
    await participants.heartbeat(user)
    return {"ok": True}


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: int,
    user: str = Header(),
    messages: MessageStore = Depends(get_messages),
):
    await messages.delete_owned(message_id, user)
    return {"deleted": message_id}


@router.put("/messages/{message_id}", status_code=201, response_model=MessageRead)
async def edit_message(
    message_id: int,
    body: MessagePost,
    user: str = Header(),
    messages: MessageStore = Depends(get_messages),
):
    return await messages.edit_owned(message_id, user, body)


@router.get("/health")
async def health(request: Request):
    try:
        await ping(request.app.state.engine)
    except (SQLAlchemyError, OSError) as exc:
        return JSONResponse({"status": "down", "error": str(exc)}, status_code=503)
    return {"status": "ok"}


def configure_logging(level: str = config.LOG_LEVEL) -> logging.Logger:
    app_logger = logging.getLogger("chat_api")
    app_logger.setLevel(level)
    if not app_logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        app_logger.addHandler(console_handler)
    return app_logger


async def handle_chat_error(request: Request, exc: ChatError) -> JSONResponse:
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


def create_app(
    database_url: str = config.DATABASE_URL,
    *,
    clock: Clock = time.time,
    stale_after: float = config.STALE_AFTER_SECONDS,
    sweep_interval: float = config.SWEEP_INTERVAL_SECONDS,
    sweep: bool = True,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = make_engine(database_url)
        await init_db(engine)
        session_factory = make_session_factory(engine)

        app.state.engine = engine
        app.state.messages = MessageStore(session_factory, clock)
        app.state.participants = ParticipantStore(session_factory, app.state.messages, clock)
        app.state.sweeper = PresenceSweeper(
            app.state.participants,
            app.state.messages,
            stale_after=stale_after,
            interval=sweep_interval,
            clock=clock,
        )

        sweep_task = asyncio.create_task(app.state.sweeper.run()) if sweep else None
        try:
            yield
        finally:
            if sweep_task is not None:
                sweep_task.cancel()
                with suppress(asyncio.CancelledError):
                    await sweep_task
            await engine.dispose()

    configure_logging()

    app = FastAPI(title="Chat API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ChatError, handle_chat_error)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
