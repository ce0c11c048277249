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

import enum
import inspect
import logging
from typing import Any, Callable, Coroutine, Dict, List, Optional, TYPE_CHECKING, TypeVar

from . import utils
from .cache import RemoteEntityCache
from .guild import GuildManager
from .message import MessageEvent, resolve_message
from .user import ClientUser

if TYPE_CHECKING:
    from .http import HTTPClient
    from .types.gateway import (
        AuthStatusPacket,
        GuildAvailablePacket,
        ChannelAvailablePacket,
        ServerFinishedPacket,
        MessageCreatePacket,
        Packet,
    )

    T = TypeVar('T')

__all__ = (
    'GatewayStatus',
    'ConnectionState',
)

_log = logging.getLogger(__name__)


async def logging_coroutine(coroutine: Coroutine[Any, Any, T], *, info: str) -> Optional[T]:
    try:
        return await coroutine
    except Exception:
        _log.exception('%s 期间发生异常', info)
        return None


class GatewayStatus(enum.Enum):
    connecting = 'connecting'
    authenticating = 'authenticating'
    syncing = 'syncing'
    ready = 'ready'
    streaming = 'streaming'
    reconnecting = 'reconnecting'
    closed = 'closed'

    def __str__(self) -> str:
        return self.name


class ConnectionState:
    """保存一次会话的所有状态，并把网关数据包转换为事件。

    每种数据包由名为 ``parse_<类型的蛇形命名>`` 的协程处理，例如 ``authStatus`` 由
    :meth:`parse_auth_status` 处理。
    """

    if TYPE_CHECKING:
        parsers: Dict[str, Callable[[Any], Coroutine[Any, Any, None]]]

    def __init__(
            self,
            *,
            dispatch: Callable,
            handlers: Dict[str, Callable],
            http: HTTPClient,
            **options: Any,
    ) -> None:
        self.http: HTTPClient = http
        self.dispatch: Callable = dispatch
        self.handlers: Dict[str, Callable] = handlers
        self.cache: RemoteEntityCache = RemoteEntityCache(http)
        self.guilds: GuildManager = GuildManager(state=self)
        self.user_id: Optional[str] = None
        self.user: Optional[ClientUser] = None
        self.status: GatewayStatus = GatewayStatus.closed

        self.parsers = parsers = {}
        for attr, func in inspect.getmembers(self):
            if attr.startswith('parse_'):
                parsers[attr[6:]] = func

        self.clear()

    def clear(self) -> None:
        """重置每次连接都会重新同步的状态。缓存的频道和子频道会保留。"""
        self.available_guilds: List[str] = []
        self.available_channels: List[str] = []

    def call_handlers(self, key: str, *args: Any, **kwargs: Any) -> None:
        try:
            func = self.handlers[key]
        except KeyError:
            pass
        else:
            func(*args, **kwargs)

    def _set_status(self, status: GatewayStatus) -> None:
        if status is not self.status:
            _log.debug('网关状态 %s -> %s', self.status, status)
        self.status = status

    def get_parser(self, packet_type: str) -> Optional[Callable[[Any], Coroutine[Any, Any, None]]]:
        return self.parsers.get(utils._snake_case(packet_type))

    async def parse(self, packet: Packet) -> None:
        func = self.get_parser(packet['type'])
        if func is None:
            _log.debug('未知数据包 %s.', packet['type'])
            return
        await logging_coroutine(func(packet), info=f'处理 {packet["type"]}')

    async def parse_auth_status(self, data: AuthStatusPacket) -> None:
        payload = data['payload']
        self.user_id = payload.get('userId')
        if payload.get('success'):
            _log.info('已作为用户 %s 通过认证', self.user_id)
            self._set_status(GatewayStatus.syncing)
        else:
            _log.info('认证失败：%s', payload.get('error'))

    async def parse_guild_available(self, data: GuildAvailablePacket) -> None:
        self.available_guilds.append(data['payload']['uuid'])

    async def parse_channel_available(self, data: ChannelAvailablePacket) -> None:
        self.available_channels.append(data['payload']['uuid'])

    async def parse_server_finished(self, data: ServerFinishedPacket) -> None:
        user = await self.cache.get_user(self.user_id)
        self.user = ClientUser(state=self, user_id=self.user_id, data=user)
        self._set_status(GatewayStatus.ready)
        _log.info('同步完成：%d 个频道，%d 个子频道可用',
                  len(self.available_guilds), len(self.available_channels))
        self.call_handlers('ready')
        self.dispatch('ready')
        self._set_status(GatewayStatus.streaming)

    async def parse_message_create(self, data: MessageCreatePacket) -> None:
        payload = data['payload']
        message = await resolve_message(self, payload)
        await message.load()

        self.dispatch('message', MessageEvent(message, payload['guildId'], payload['channelId']))
        if message.resolved:
            message.channel._add_message(message)
