#  The MIT License (MIT)
#  Copyright (c) 2021-present foxwhite25
#
#  Permission is hereby granted, free of charge, to any person obtaining a
#  copy of this software and associated documentation files (the "Software"),
#  to deal in the Software without restriction, including without limitation
#  the rights to use, copy, modify, merge, publish, distribute, sublicense,
#  and/or sell copies of the Software, and to permit persons to whom the
#  Software is furnished to do so, subject to the following conditions:
#
#  The above copyright notice and this permission notice shall be included in
#  all copies or substantial portions of the Software.
#
#  THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS
#  OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
#  FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
#  AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
#  LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING
#  FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER
#  DEALINGS IN THE SOFTWARE.

from __future__ import annotations

import datetime
import logging
from typing import Any, NamedTuple, Optional, TYPE_CHECKING, Union

from . import utils
from .user import User

__all__ = (
    'Message',
    'UnresolvedMessage',
    'MessageEvent',
)

if TYPE_CHECKING:
    from .channel import Channel
    from .guild import Guild
    from .state import ConnectionState
    from .types.message import Message as MessagePayload

_log = logging.getLogger(__name__)


class _BaseMessage:
    __slots__ = (
        'id',
        'author_id',
        'guild_id',
        'channel_id',
        'created_at',
        'content',
        'author',
        'loaded',
        '_state',
    )

    resolved: bool = False

    def __init__(self, *, state: ConnectionState, data: MessagePayload):
        self._state: ConnectionState = state
        self.id: str = data['messageId']
        self.author_id: str = data['authorId']
        self.guild_id: str = data['guildId']
        self.channel_id: str = data['channelId']
        self.created_at: datetime.datetime = utils.parse_time(data['timestamp'])
        self.content: str = data.get('content', '')
        self.author: Optional[User] = None
        self.loaded: bool = False

    def __repr__(self) -> str:
        return (
            f'<{self.__class__.__name__} id={self.id!r} channel_id={self.channel_id!r} '
            f'guild_id={self.guild_id!r} author={self.author!r}>'
        )

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, _BaseMessage) and other.id == self.id

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        return hash(self.id)

    async def load(self) -> None:
        """|coro|
        获取消息的作者并赋值给 :attr:`author` 。
        """
        data = await self._state.cache.get_user(self.author_id)
        self.author = User(data=data)
        self.loaded = True

    async def fetch_guild(self) -> Guild:
        raise NotImplementedError

    async def fetch_channel(self) -> Channel:
        raise NotImplementedError


class Message(_BaseMessage):
    r"""代表一条所属子频道已经缓存的消息。

    .. container:: operations

        .. describe:: x == y

            检查两个消息是否相等。

        .. describe:: x != y

            检查两个消息是否不相等。

        .. describe:: hash(x)

            返回消息的哈希值。

    Attributes
    ------------
    id: :class:`str`
        消息 ID。
    author_id: :class:`str`
        发送消息的用户 ID。
    author: Optional[:class:`User`]
        发送消息的用户。在 :meth:`load` 之前为 ``None`` 。
    content: :class:`str`
        消息的实际内容。
    created_at: :class:`datetime.datetime`
        消息创建时的 UTC 时间。
    channel: :class:`Channel`
        发送消息的子频道。
    guild: :class:`Guild`
        消息所属的频道。
    """

    __slots__ = ('channel', 'guild')

    resolved = True

    def __init__(self, *, state: ConnectionState, data: MessagePayload, channel: Channel):
        super().__init__(state=state, data=data)
        self.channel: Channel = channel
        self.guild: Guild = channel.guild

    async def fetch_guild(self) -> Guild:
        """|coro|
        返回 :attr:`guild` 。不会发出任何请求。
        """
        return self.guild

    async def fetch_channel(self) -> Channel:
        """|coro|
        返回 :attr:`channel` 。不会发出任何请求。
        """
        return self.channel


class UnresolvedMessage(_BaseMessage):
    r"""代表一条所属子频道尚未缓存的消息。

    这种消息只保存频道和子频道的 ID。 :meth:`fetch_guild` 和 :meth:`fetch_channel`
    每次调用时都会通过 :class:`GuildManager` 解析，可能会发出请求，结果不会保存在消息上。

    Attributes
    ------------
    id: :class:`str`
        消息 ID。
    author_id: :class:`str`
        发送消息的用户 ID。
    author: Optional[:class:`User`]
        发送消息的用户。在 :meth:`load` 之前为 ``None`` 。
    content: :class:`str`
        消息的实际内容。
    created_at: :class:`datetime.datetime`
        消息创建时的 UTC 时间。
    guild_id: :class:`str`
        消息所属频道的 ID。
    channel_id: :class:`str`
        发送消息的子频道 ID。
    """

    __slots__ = ()

    async def fetch_guild(self) -> Guild:
        """|coro|
        获取消息所属的频道。

        Raises
        -------
        :exc:`.AuthRequired`
            未登录。
        :exc:`.HTTPException`
            获取频道失败。
        """
        return await self._state.guilds.get(self.guild_id)

    async def fetch_channel(self) -> Channel:
        """|coro|
        获取发送消息的子频道，必要时先获取其所属的频道。

        Raises
        -------
        :exc:`.AuthRequired`
            未登录。
        :exc:`.HTTPException`
            获取子频道失败。
        """
        guild = await self.fetch_guild()
        return await guild.channels.get(self.channel_id)


AnyMessage = Union[Message, UnresolvedMessage]


class MessageEvent(NamedTuple):
    """``message`` 事件的参数。"""

    message: AnyMessage
    guild: str
    channel: str


async def resolve_message(state: ConnectionState, data: MessagePayload) -> AnyMessage:
    """根据本地缓存构造 :class:`Message` 或 :class:`UnresolvedMessage` 。

    只有当所属频道已缓存，并且该频道的 :class:`ChannelManager` 也缓存了该子频道时，
    消息才会直接引用 :class:`Channel` 。
    """
    guilds = state.guilds
    guild_id = data['guildId']
    channel_id = data['channelId']

    if guilds.loaded(guild_id):
        # both lookups are cache hits at this point
        guild = await guilds.get(guild_id)
        if guild.channels.loaded(channel_id):
            channel = await guild.channels.get(channel_id)
            return Message(state=state, data=data, channel=channel)

    _log.debug('子频道 %s 尚未缓存，消息 %s 将按需解析', channel_id, data['messageId'])
    return UnresolvedMessage(state=state, data=data)
