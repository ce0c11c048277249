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
from typing import Any, Dict, Iterator, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .http import HTTPClient
    from .types.channel import Channel as ChannelPayload
    from .types.guild import Guild as GuildPayload
    from .types.message import Message as MessagePayload
    from .types.user import User as UserPayload

__all__ = (
    'EntityCache',
    'RemoteEntityCache',
)

_log = logging.getLogger(__name__)

USERS = 'users'
CHANNELS = 'channels'
GUILDS = 'guilds'
MESSAGES = 'messages'
GUILD_WRAPPERS = 'guild-wrappers'
CHANNEL_WRAPPERS = 'channel-wrappers'


class EntityCache:
    """按 ``(category, id)`` 存放任意数据的缓存。

    缓存没有淘汰机制，条目在会话期间一直存在。对不存在的类别进行的任何操作都会返回
    ``None`` 而不是抛出异常，调用方负责先用 :meth:`create_category` 创建类别。
    """

    def __init__(self) -> None:
        self._cache: Dict[str, Dict[str, Any]] = {}

    def __repr__(self) -> str:
        inner = ' '.join(f'{k}={len(v)}' for k, v in self._cache.items())
        return f'<{self.__class__.__name__} {inner}>'

    def get(self, category: str, item: str) -> Any:
        bucket = self._cache.get(category)
        if bucket is None:
            return None
        return bucket.get(item)

    def set(self, category: str, item: str, data: Any) -> Any:
        bucket = self._cache.get(category)
        if bucket is None:
            return None
        bucket[item] = data
        return data

    def has(self, category: str, item: str) -> Optional[bool]:
        bucket = self._cache.get(category)
        if bucket is None:
            return None
        return bucket.get(item) is not None

    def remove(self, category: str, item: str) -> Optional[bool]:
        bucket = self._cache.get(category)
        if bucket is None:
            return None
        bucket.pop(item, None)
        return True

    def create_category(self, category: str) -> None:
        """创建类别。如果类别已存在，则清空其中的所有条目。"""
        self._cache[category] = {}

    def has_category(self, category: str) -> bool:
        return category in self._cache

    def values(self, category: str) -> Iterator[Any]:
        return iter(list(self._cache.get(category, {}).values()))


class RemoteEntityCache(EntityCache):
    """在缓存未命中时通过 REST API 填充数据的 :class:`EntityCache`。

    每种数据首次获取后都会永久缓存，之后的调用都是缓存命中。

    Parameters
    -----------
    http: :class:`HTTPClient`
        用于发送请求的 HTTP 客户端，令牌也保存在这里。
    """

    def __init__(self, http: HTTPClient) -> None:
        super().__init__()
        self.http: HTTPClient = http
        for category in (USERS, CHANNELS, GUILDS, MESSAGES):
            self.create_category(category)

    @property
    def token(self) -> Optional[str]:
        return self.http.token

    async def get_user(self, user_id: str) -> UserPayload:
        if self.has(USERS, user_id):
            return self.get(USERS, user_id)
        data = await self.http.get_user(user_id)
        return self.set(USERS, user_id, data)

    async def get_channel(self, channel_id: str) -> ChannelPayload:
        if self.has(CHANNELS, channel_id):
            return self.get(CHANNELS, channel_id)
        data = await self.http.get_channel(channel_id)
        return self.set(CHANNELS, channel_id, data)

    async def get_guild(self, guild_id: str) -> GuildPayload:
        if self.has(GUILDS, guild_id):
            return self.get(GUILDS, guild_id)
        data = await self.http.get_guild(guild_id)
        return self.set(GUILDS, guild_id, data)

    async def get_messages(self, channel_id: str) -> List[MessagePayload]:
        if self.has(MESSAGES, channel_id):
            return self.get(MESSAGES, channel_id)
        data = await self.http.logs_from(channel_id)
        _log.debug('子频道 %s 的历史记录包含 %d 条消息', channel_id, len(data['messages']))
        return self.set(MESSAGES, channel_id, data['messages'])
