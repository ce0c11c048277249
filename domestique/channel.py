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

import logging
from typing import Any, List, Optional, TYPE_CHECKING

from .cache import CHANNEL_WRAPPERS
from .message import Message

__all__ = (
    'Channel',
    'ChannelManager',
)

if TYPE_CHECKING:
    from .guild import Guild
    from .state import ConnectionState
    from .types.channel import Channel as ChannelPayload

_log = logging.getLogger(__name__)


class Channel:
    """代表一个子频道。

    .. container:: operations

        .. describe:: x == y
            检查两个子频道是否相等。
        .. describe:: x != y
            检查两个子频道是否不相等。
        .. describe:: hash(x)
            返回子频道的哈希值。
        .. describe:: str(x)
            返回子频道的名称。

    Attributes
    -----------
    id: :class:`str`
        子频道 ID。
    name: :class:`str`
        子频道名称。
    topic: :class:`str`
        子频道的主题。
    guild_id: :class:`str`
        子频道所属频道的 ID。
    guild: :class:`Guild`
        子频道所属的频道。
    messages: List[:class:`Message`]
        子频道的消息。实时收到的消息插入到列表开头。
    loaded: :class:`bool`
        是否已经获取历史消息并加载了每条消息的作者。
    """

    __slots__ = (
        'id',
        'name',
        'topic',
        'guild_id',
        'guild',
        'messages',
        'loaded',
        '_state',
    )

    def __init__(self, *, state: ConnectionState, data: ChannelPayload, guild: Guild):
        self._state: ConnectionState = state
        self.id: str = data['id']
        self.name: str = data.get('name', '')
        self.topic: str = data.get('topic', '')
        self.guild_id: str = data.get('guildId') or guild.id
        self.guild: Guild = guild
        self.messages: List[Message] = []
        self.loaded: bool = False

    def __str__(self) -> str:
        return self.name or ''

    def __repr__(self) -> str:
        attrs = (
            ('id', self.id),
            ('name', self.name),
            ('guild_id', self.guild_id),
        )
        inner = ' '.join('%s=%r' % t for t in attrs)
        return f'<Channel {inner}>'

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, Channel) and other.id == self.id

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        return hash(self.id)

    def _add_message(self, message: Message) -> None:
        self.messages.insert(0, message)

    async def load(self) -> None:
        """|coro|
        获取子频道的历史消息并加载每条消息的作者。

        已加载的子频道不会再次请求。

        Raises
        -------
        :exc:`.AuthRequired`
            未登录。
        :exc:`.HTTPException`
            获取消息失败。
        """
        if self.loaded:
            return

        history = await self._state.cache.get_messages(self.id)
        self.messages = [Message(state=self._state, data=m, channel=self) for m in history]
        for message in self.messages:
            await message.load()
        self.loaded = True

    async def send(self, content: str) -> Optional[Message]:
        """|coro|
        向该子频道发送消息。

        Parameters
        ------------
        content: :class:`str`
            发送的消息内容。

        Raises
        --------
        :exc:`.AuthRequired`
            未登录。
        :exc:`.HTTPException`
            发送消息失败。
        :exc:`.ProtocolError`
            服务器拒绝了该消息。

        Returns
        ---------
        Optional[:class:`Message`]
            服务器返回的消息，没有返回时为 ``None`` 。消息的作者不会被加载。
        """
        data = await self._state.http.send_message(self.guild_id, self.id, content)
        if not data:
            return None
        return Message(state=self._state, data=data, channel=self)


class ChannelManager:
    """按需获取并记住某个频道中 :class:`Channel` 对象的管理器。"""

    def __init__(self, *, state: ConnectionState, guild: Guild) -> None:
        self._state: ConnectionState = state
        self.guild: Guild = guild
        cache = state.cache
        if not cache.has_category(CHANNEL_WRAPPERS):
            cache.create_category(CHANNEL_WRAPPERS)

    def __repr__(self) -> str:
        return f'<ChannelManager guild={self.guild.id!r}>'

    async def get(self, channel_id: str) -> Channel:
        """|coro|
        返回给定 ID 的子频道，如果尚未缓存则从 API 获取。

        Raises
        -------
        :exc:`.AuthRequired`
            未登录。
        :exc:`.HTTPException`
            获取子频道失败。
        :exc:`.ProtocolError`
            服务器返回了错误。
        """
        cache = self._state.cache
        if cache.has(CHANNEL_WRAPPERS, channel_id):
            return cache.get(CHANNEL_WRAPPERS, channel_id)

        data = await cache.get_channel(channel_id)
        # another task may have built the wrapper while we were fetching
        if cache.has(CHANNEL_WRAPPERS, channel_id):
            return cache.get(CHANNEL_WRAPPERS, channel_id)

        channel = Channel(state=self._state, data=data, guild=self.guild)
        _log.debug('已缓存子频道 %s (%s)', channel.id, channel.name)
        return cache.set(CHANNEL_WRAPPERS, channel_id, channel)

    def loaded(self, channel_id: str) -> bool:
        """返回给定 ID 的子频道是否已缓存。这不会发出任何请求。"""
        return bool(self._state.cache.has(CHANNEL_WRAPPERS, channel_id))
