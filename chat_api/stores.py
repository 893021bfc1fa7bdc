"""Participant and message stores.

Both stores receive a session factory and a clock at construction; neither
touches global connection state. Every public method is one logical
operation running in its own session, so concurrent requests only meet at
the database (the unique index on ``participant.name`` is what makes
registration race-free).
"""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Union

import pydantic
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel, col, select

from .errors import ChatError, Conflict, Forbidden, NotFound, StoreError, ValidationError
from .models import (
    BROADCAST_TARGET,
    Message,
    MessageCreate,
    Participant,
    ParticipantCreate,
)
from .visibility import visible_to

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Fields = Union[Mapping[str, Any], SQLModel]

JOIN_NOTICE = "joins the room..."
LEAVE_NOTICE = "leaves the room..."


def _validate(schema: type[SQLModel], data: Fields):
    if isinstance(data, SQLModel):
        data = data.model_dump()
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(str(exc)) from exc


class _Store:
    def __init__(self, session_factory, clock: Clock = time.time):
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _session(self):
        try:
            async with self._session_factory() as session:
                yield session
        except ChatError:
            raise
        except SQLAlchemyError as exc:
            logger.error("store failure: %s", exc)
            raise StoreError(str(exc)) from exc


class MessageStore(_Store):
    """Append-only message log, ordered by id."""

    def _build(self, sender: str, fields: Fields) -> Message:
        if not isinstance(sender, str) or not sender.strip():
            raise ValidationError("sender is required")
        data = _validate(MessageCreate, fields)
        return Message(
            sender=sender,
            to=data.to,
            text=data.text,
            kind=data.kind,
            time=datetime.fromtimestamp(self._clock()).strftime("%H:%M:%S"),
        )

    def _status(self, name: str, text: str) -> Message:
        return self._build(name, {"to": BROADCAST_TARGET, "text": text, "kind": "status"})

    async def _save(self, message: Message) -> Message:
        async with self._session() as session:
            session.add(message)
            await session.commit()
            await session.refresh(message)
        return message

    async def append(self, sender: str, fields: Fields) -> Message:
        return await self._save(self._build(sender, fields))

    async def announce_leave(self, name: str) -> Message:
        return await self._save(self._status(name, LEAVE_NOTICE))

    async def recent(self, viewer: str, limit: Optional[int] = None) -> list[Message]:
        """Messages visible to ``viewer``, oldest first.

        With ``limit`` only the newest ``limit`` visible messages are kept,
        still in chronological order.
        """
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0):
            raise ValidationError("limit must be a positive integer")

        stmt = select(Message).where(visible_to(viewer))
        async with self._session() as session:
            if limit is None:
                return list((await session.exec(stmt.order_by(col(Message.id)))).all())
            rows = (await session.exec(stmt.order_by(col(Message.id).desc()).limit(limit))).all()
        return list(reversed(rows))

    async def get(self, message_id: int) -> Message:
        async with self._session() as session:
            message = await session.get(Message, message_id)
        if message is None:
            raise NotFound(f"message {message_id} not found")
        return message

    async def _owned(self, session, message_id: int, requester: str) -> Message:
        message = await session.get(Message, message_id)
        if message is None:
            raise NotFound(f"message {message_id} not found")
        if message.sender != requester:
            raise Forbidden(f"message {message_id} belongs to another participant")
        return message

    async def delete_owned(self, message_id: int, requester: str) -> None:
        async with self._session() as session:
            message = await self._owned(session, message_id, requester)
            await session.delete(message)
            await session.commit()
        logger.info("message %s deleted by %s", message_id, requester)

    async def edit_owned(self, message_id: int, requester: str, fields: Fields) -> Message:
        data = _validate(MessageCreate, fields)
        async with self._session() as session:
            message = await self._owned(session, message_id, requester)
            message.to = data.to
            message.text = data.text
            message.kind = data.kind
            session.add(message)
            await session.commit()
            await session.refresh(message)
        return message


class ParticipantStore(_Store):
    """Presence records keyed by display name."""

    def __init__(self, session_factory, messages: MessageStore, clock: Clock = time.time):
        super().__init__(session_factory, clock)
        self._messages = messages

    async def register(self, name: str) -> Participant:
        name = _validate(ParticipantCreate, {"name": name}).name
        participant = Participant(name=name, last_seen=self._clock())
        # the join notice commits together with the participant row
        notice = self._messages._status(name, JOIN_NOTICE)
        async with self._session() as session:
            session.add(participant)
            session.add(notice)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise Conflict(f"name {name!r} is already taken") from exc
            await session.refresh(participant)
        logger.info("participant %s registered", name)
        return participant

    async def _find(self, session, name: str) -> Optional[Participant]:
        return (await session.exec(select(Participant).where(Participant.name == name))).first()

    async def get(self, name: str) -> Optional[Participant]:
        async with self._session() as session:
            return await self._find(session, name)

    async def exists(self, name: str) -> bool:
        return await self.get(name) is not None

    async def heartbeat(self, name: str) -> Participant:
        async with self._session() as session:
            participant = await self._find(session, name)
            if participant is None:
                raise NotFound(f"participant {name!r} not found")
            participant.last_seen = self._clock()
            session.add(participant)
            await session.commit()
            await session.refresh(participant)
        return participant

    async def list(self) -> list[Participant]:
        async with self._session() as session:
            return list((await session.exec(select(Participant).order_by(col(Participant.id)))).all())

    async def remove(self, name: str) -> bool:
        """Delete ``name`` if present; returns whether a record was removed."""
        async with self._session() as session:
            participant = await self._find(session, name)
            if participant is None:
                return False
            await session.delete(participant)
            await session.commit()
        logger.info("participant %s removed", name)
        return True

    async def remove_stale(self, cutoff: float) -> list[str]:
        """Delete every participant last seen at or before ``cutoff``.

        One DELETE ... RETURNING statement, so a heartbeat committed while the
        sweep runs keeps its participant.
        """
        stmt = (
            delete(Participant)
            .where(col(Participant.last_seen) <= cutoff)
            .returning(col(Participant.name))
        )
        async with self._session() as session:
            names = list((await session.execute(stmt)).scalars().all())
            await session.commit()
        return names
