from typing import Literal, Optional, TypedDict, Union

from .message import Message


class _AuthStatusOptional(TypedDict, total=False):
    error: Optional[str]


class AuthStatus(_AuthStatusOptional):
    userId: str
    success: bool


class Available(TypedDict):
    uuid: str


class AuthStatusPacket(TypedDict):
    type: Literal['authStatus']
    payload: AuthStatus


class GuildAvailablePacket(TypedDict):
    type: Literal['guildAvailable']
    payload: Available


class ChannelAvailablePacket(TypedDict):
    type: Literal['channelAvailable']
    payload: Available


class _ServerFinishedOptional(TypedDict, total=False):
    payload: dict


class ServerFinishedPacket(_ServerFinishedOptional):
    type: Literal['serverFinished']


class MessageCreatePacket(TypedDict):
    type: Literal['messageCreate']
    payload: Message


Packet = Union[
    AuthStatusPacket,
    GuildAvailablePacket,
    ChannelAvailablePacket,
    ServerFinishedPacket,
    MessageCreatePacket,
]
