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
from typing import Any, Callable, Optional, TYPE_CHECKING

import aiohttp

from . import utils
from .error import ConnectionClosed
from .state import GatewayStatus

if TYPE_CHECKING:
    from .client import Client
    from .state import ConnectionState

_log = logging.getLogger(__name__)

__all__ = (
    'DomestiqueWebSocket',
    'DEFAULT_WS_URL',
)

DEFAULT_WS_URL = 'wss://api.chat.eqilia.eu/api/v0/live/ws'


class WebSocketClosure(Exception):
    """一个来对付 aiohttp 不发出关闭信号的错误。"""
    pass


class DomestiqueWebSocket:
    """网关连接。

    数据包严格按到达顺序处理：每个数据包的处理（包括其中的请求）完成之后才会读取下一个。
    """

    def __init__(self, socket: aiohttp.ClientWebSocketResponse) -> None:
        self.socket: aiohttp.ClientWebSocketResponse = socket

        # an empty dispatcher to prevent crashes
        self._dispatch: Callable[..., Any] = lambda *args: None
        self._connection: Optional[ConnectionState] = None
        self._close_code: Optional[int] = None
        self.gateway: str = ''

    @property
    def open(self) -> bool:
        return not self.socket.closed

    @classmethod
    async def from_client(cls, client: Client, *, gateway: Optional[str] = None) -> DomestiqueWebSocket:
        """从 :class:`Client` 创建一个 websocket。
        这仅供内部使用。
        """
        gateway = gateway or client.ws_url
        state = client._connection
        state._set_status(GatewayStatus.connecting)
        socket = await client.http.ws_connect(gateway, client.http.token)
        ws = cls(socket)

        # dynamically add attributes needed
        ws._connection = state
        ws._dispatch = client.dispatch
        ws.gateway = gateway

        _log.debug('创建连接到 %s 的 websocket', gateway)
        state._set_status(GatewayStatus.authenticating)
        return ws

    async def received_message(self, msg: Any, /) -> None:
        if type(msg) is bytes:
            msg = msg.decode('utf-8')

        _log.debug('INC %s', msg)
        try:
            packet = utils._from_json(msg)
        except ValueError:
            _log.warning('无法解析的数据包：%r', msg)
            return

        event = packet.get('type') if isinstance(packet, dict) else None
        if not isinstance(event, str):
            _log.warning('缺少类型的数据包：%r', packet)
            return

        self._dispatch('socket_event_type', event)
        await self._connection.parse(packet)
        self._dispatch(utils._snake_case(event), packet)

    async def poll_event(self) -> None:
        """读取并处理一个数据包。

        Raises
        ------
        ConnectionClosed
            websocket 连接被关闭。
        """
        try:
            msg = await self.socket.receive()
            if msg.type is aiohttp.WSMsgType.TEXT:
                await self.received_message(msg.data)
            elif msg.type is aiohttp.WSMsgType.BINARY:
                await self.received_message(msg.data)
            elif msg.type is aiohttp.WSMsgType.ERROR:
                _log.debug('收到 %s', msg)
                raise msg.data
            elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSE):
                _log.debug('收到 %s', msg)
                raise WebSocketClosure
        except WebSocketClosure:
            code = self._close_code or self.socket.close_code
            if not self.socket.closed:
                await self.socket.close()
            _log.info('Websocket 以 %s 关闭。', code)
            raise ConnectionClosed(self.socket, code=code) from None

    async def close(self, code: int = 1000) -> None:
        self._close_code = code
        await self.socket.close(code=code)

