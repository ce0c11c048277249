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
from typing import Any, List, Tuple, TYPE_CHECKING

from . import utils
from .cache import GUILD_WRAPPERS
from .channel import ChannelManager

__all__ = (
    'Guild',
    'GuildManager',
)

if TYPE_CHECKING:
    from .state import ConnectionState
    from .types.guild import Guild as GuildPayload

_log = logging.getLogger(__name__)


class Guild:
    """代表一个频道。

    .. container:: operations

        .. describe:: x == y
            检查两个频道是否相等。
        .. describe:: x != y
            检查两个频道是否不相等。
        .. describe:: hash(x)
            返回频道的哈希值。
        .. describe:: str(x)
            返回频道的名称。

    Attributes
    ----------
    id: :class:`str`
        频道的 ID。
    name: :class:`str`
        频道名称。
    topic: :class:`str`
        频道的主题。
    channel_ids: Tuple[:class:`str`, ...]
        属于该频道的子频道 ID，顺序与服务器返回的一致，创建后不会改变。
    channels: :class:`ChannelManager`
        按需获取该频道子频道的管理器。
    loaded: :class:`bool`
        :meth:`load` 是否已经完成。
    """

    __slots__ = (
        'id',
        'name',
        'topic',
        'channel_ids',
        'channels',
        'loaded',
        '_state',
    )

    def __init__(self, *, state: ConnectionState, data: GuildPayload):
        self._state: ConnectionState = state
        self.id: str = data['id']
        self.name: str = data.get('name', '')
        self.topic: str = data.get('topic', '')
        self.channel_ids: Tuple[str, ...] = tuple(data.get('channelIds') or ())
        self.channels: ChannelManager = ChannelManager(state=state, guild=self)
        self.loaded: bool = False

    def __str__(self) -> str:
        return self.name or ''

    def __repr__(self) -> str:
        attrs = (
            ('id', self.id),
            ('name', self.name),
            ('channels', len(self.channel_ids)),
        )
        inner = ' '.join('%s=%r' % t for t in attrs)
        return f'<Guild {inner}>'

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, Guild) and other.id == self.id

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        return hash(self.id)

    async def load(self) -> None:
        """|coro|
        标记频道已加载。

        子频道总是通过 :attr:`channels` 按需获取，这里不会预先获取它们。
        """
        self.loaded = True


class GuildManager:
    """按需获取并记住 :class:`Guild` 对象的管理器。

    同一个 ID 的频道只会获取一次，之后每次 :meth:`get` 都返回同一个对象。
    """

    def __init__(self, *, state: ConnectionState) -> None:
        self._state: ConnectionState = state
        cache = state.cache
        if not cache.has_category(GUILD_WRAPPERS):
            cache.create_category(GUILD_WRAPPERS)

    def __repr__(self) -> str:
        return f'<GuildManager cached={len(self.cached)}>'

    @property
    def cached(self) -> List[Guild]:
        """List[:class:`Guild`]: 已经获取过的频道。"""
        return list(self._state.cache.values(GUILD_WRAPPERS))

    async def get(self, guild_id: str) -> Guild:
        """|coro|
        返回给定 ID 的频道，如果尚未缓存则从 API 获取。

        Raises
        -------
        :exc:`.AuthRequired`
            未登录。
        :exc:`.HTTPException`
            获取频道失败。
        :exc:`.ProtocolError`
            服务器返回了错误。
        """
        cache = self._state.cache
        if cache.has(GUILD_WRAPPERS, guild_id):
            return cache.get(GUILD_WRAPPERS, guild_id)

        data = await cache.get_guild(guild_id)
        # another task may have built the wrapper while we were fetching
        if cache.has(GUILD_WRAPPERS, guild_id):
            return cache.get(GUILD_WRAPPERS, guild_id)

        guild = Guild(state=self._state, data=data)
        cache.set(GUILD_WRAPPERS, guild_id, guild)
        _log.debug('已缓存频道 %s (%s)', guild.id, guild.name)
        await guild.load()
        return guild

    def loaded(self, guild_id: str) -> bool:
        """返回给定 ID 的频道是否已缓存。这不会发出任何请求。"""
        return bool(self._state.cache.has(GUILD_WRAPPERS, guild_id))

    def channel_loaded(self, channel_id: str) -> bool:
        """返回给定 ID 的子频道是否已缓存。

        在已缓存的频道中查找包含该子频道的频道；如果没有频道声明该子频道，则返回 ``False`` 。
        """
        guild = utils.find(lambda g: channel_id in g.channel_ids, self._state.cache.values(GUILD_WRAPPERS))
        if guild is None:
            return False
        return guild.channels.loaded(channel_id)
