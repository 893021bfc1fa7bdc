from typing import Literal, Optional

import pydantic
from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

BROADCAST_TARGET = "all"

MessageKind = Literal["broadcast", "private", "status"]


class Participant(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    last_seen: float


class Message(SQLModel, table=True):
    # id doubles as the insertion sequence
    id: Optional[int] = Field(default=None, primary_key=True)
    sender: str = Field(index=True)
    to: str = Field(index=True)
    text: str
    kind: str
    time: str


class ParticipantCreate(SQLModel):
    name: str = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class MessageCreate(SQLModel):
    """Fields a message is built from; shared by append and edit."""

    to: str = Field(min_length=1)
    text: str = Field(min_length=1)
    kind: MessageKind


class MessagePost(MessageCreate):
    # status notices are written by the server only
    kind: Literal["broadcast", "private"]


class MessageRead(pydantic.BaseModel):
    """Wire shape of a message; the sender goes out as ``from``."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sender: str = pydantic.Field(serialization_alias="from")
    to: str
    text: str
    kind: str
    time: str
