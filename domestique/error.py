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

import asyncio
from typing import Optional, TYPE_CHECKING, Any, Union, Dict

if TYPE_CHECKING:
    from .http import Route
    from aiohttp import ClientResponse, ClientWebSocketResponse

__all__ = (
    'DomestiqueException',
    'ClientException',
    'AuthRequired',
    'LoginFailure',
    'HandshakeTimeout',
    'ConnectionClosed',
    'HTTPException',
    'Forbidden',
    'NotFound',
    'ServerError',
    'RateLimited',
    'ProtocolError',
)


class DomestiqueException(Exception):
    """domestique 的基本异常类，可以捕获从库引发的任何异常。"""
    pass


class ClientException(DomestiqueException):
    """当 :class:`Client` 中的操作失败时引发的异常。
    这些通常是由于用户输入而发生的异常。
    """

    pass


class AuthRequired(ClientException):
    """在未登录的情况下调用需要令牌的 API 时引发的异常。"""

    def __init__(self, action: str):
        self.action: str = action
        super().__init__(f'未登录时无法{action}')


class LoginFailure(ClientException):
    """当 :meth:`Client.login` 或 :meth:`Client.login_token` 由于凭据不正确或服务器拒绝而失败时引发的异常。
    """

    pass


class HandshakeTimeout(ClientException, asyncio.TimeoutError):
    """在限定时间内没有收到 ``authStatus`` 数据包时引发的异常。

    Attributes
    -----------
    timeout: :class:`float`
        等待的秒数。
    """

    def __init__(self, timeout: float):
        self.timeout: float = timeout
        super().__init__(f'等待 authStatus 超时（{timeout:.1f} 秒）')


class ConnectionClosed(ClientException):
    """由于无法在内部处理的原因关闭 websocket 连接时引发的异常。

    Attributes
    -----------
    code: :class:`int`
        websocket 的关闭代码。
    """

    def __init__(self, socket: Optional[ClientWebSocketResponse], *, code: Optional[int] = None):
        # aiohttp doesn't seem to consistently provide close reason
        close_code = socket.close_code if socket is not None else None
        self.code: int = code or close_code or -1
        super().__init__(f'WebSocket 以 {self.code} 关闭')


class HTTPException(DomestiqueException):
    """HTTP 请求操作失败时引发的异常。

    Attributes
    ------------
    response: :class:`aiohttp.ClientResponse`
        失败的 HTTP 请求的响应。
    text: :class:`str`
        错误的文本。可能是一个空字符串。
    status: :class:`int`
        HTTP 请求的状态码。
    route: Optional[:class:`Route`]
        HTTP 请求的路径
    """

    def __init__(
            self,
            response: ClientResponse,
            message: Optional[Union[str, Dict[str, Any]]],
            route: Optional[Route] = None
    ):
        self.route = route
        self.response: ClientResponse = response
        self.status: int = response.status
        if isinstance(message, dict):
            self.text: str = message.get('message') or ''
        else:
            self.text = message or ''

        fmt = f'响应代码不是 OK；响应代码为 {self.status}'
        if len(self.text):
            fmt += f': {self.text}'

        super().__init__(fmt)


class Forbidden(HTTPException):
    """发生状态代码 401 或 403 时引发的异常。 :exc:`HTTPException` 的子类
    """
    pass


class NotFound(HTTPException):
    """发生状态代码 404 时引发的异常。 :exc:`HTTPException` 的子类
    """
    pass


class ServerError(HTTPException):
    """发生 500 范围状态代码时引发的异常。 :exc:`HTTPException` 的子类。
    """
    pass


class RateLimited(HTTPException):
    """发生状态代码 429 时引发的异常。

    Attributes
    -----------
    retry_after: :class:`float`
        服务器要求等待的秒数，取自 ``X-Timeout-Remaining-Milliseconds`` 。
    """

    def __init__(
            self,
            response: ClientResponse,
            message: Optional[Union[str, Dict[str, Any]]],
            route: Optional[Route] = None
    ):
        super().__init__(response, message, route=route)
        remaining = response.headers.get('X-Timeout-Remaining-Milliseconds')
        self.retry_after: float = int(remaining) / 1000 if remaining else 0.0


class ProtocolError(DomestiqueException):
    """服务器返回的信封中 ``error`` 字段不为零时引发的异常。

    Attributes
    -----------
    code: :class:`int`
        服务器返回的错误代码。
    text: :class:`str`
        服务器提供的错误信息。
    action: :class:`str`
        失败的操作。
    """

    def __init__(self, action: str, code: int, message: Optional[str]):
        self.action: str = action
        self.code: int = code
        self.text: str = message or ''
        super().__init__(f'{action}时出错。错误：{self.text}')
