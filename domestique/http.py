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
import sys
from typing import ClassVar, Any, Optional, Dict, Union, TypeVar, Coroutine
from urllib.parse import quote as _uriquote

import aiohttp

from . import __version__, utils
from .error import (
    AuthRequired,
    HTTPException,
    Forbidden,
    NotFound,
    ServerError,
    RateLimited,
    ProtocolError,
    LoginFailure,
)
from .types import user, guild, message, channel
from .types.http import Envelope, LoginResponse
from .utils import MISSING

T = TypeVar('T')
Response = Coroutine[Any, Any, T]
_log = logging.getLogger(__name__)

__all__ = ('Route', 'HTTPClient', 'DEFAULT_API_URL')

DEFAULT_API_URL = 'https://api.chat.eqilia.eu'


class Route:
    BASE: ClassVar[str] = '/api/v0'

    def __init__(self, method: str, path: str, **parameters: Any) -> None:
        self.method: str = method
        self.template: str = path
        path = self.BASE + path
        if parameters:
            path = path.format_map({k: _uriquote(v) if isinstance(v, str) else v for k, v in parameters.items()})
        self.path: str = path

    @property
    def bucket(self) -> str:
        # the bucket is the first two path segments
        return bucket_for(self.path)

    def __repr__(self) -> str:
        return f'<Route {self.method} {self.path}>'


def bucket_for(path: str) -> str:
    segments = [s for s in path.split('?', 1)[0].split('/') if s]
    return '/' + '/'.join(segments[:2])


async def json_or_text(response: aiohttp.ClientResponse) -> Union[Dict[str, Any], str]:
    text = await response.text(encoding='utf-8')
    try:
        if response.headers['content-type'].startswith('application/json'):
            return utils._from_json(text)
    except Exception:
        pass

    return text


def _raise_for_status(response: aiohttp.ClientResponse, data: Any, route: Optional[Route]) -> None:
    status = response.status
    if status in (401, 403):
        raise Forbidden(response, data, route=route)
    elif status == 404:
        raise NotFound(response, data, route=route)
    elif status == 429:
        raise RateLimited(response, data, route=route)
    elif status >= 500:
        raise ServerError(response, data, route=route)
    raise HTTPException(response, data, route=route)


class HTTPClient:
    """Represents an HTTP client sending HTTP requests to the chat API.

    Every endpoint answers with an envelope ``{error, payload, message}``;
    :meth:`request` unwraps it and returns the payload.
    """

    def __init__(
            self,
            api_url: str = DEFAULT_API_URL,
            connector: Optional[aiohttp.BaseConnector] = None,
            *,
            proxy: Optional[str] = None,
            proxy_auth: Optional[aiohttp.BasicAuth] = None,
    ) -> None:
        self.api_url: str = api_url.rstrip('/')
        self.connector = connector
        self.__session: aiohttp.ClientSession = MISSING  # filled in on first request
        self.token: Optional[str] = None
        self.proxy: Optional[str] = proxy
        self.proxy_auth: Optional[aiohttp.BasicAuth] = proxy_auth

        user_agent = 'domestique.py {0} Python/{1[0]}.{1[1]} aiohttp/{2}'
        self.user_agent: str = user_agent.format(__version__, sys.version_info, aiohttp.__version__)

    @property
    def _session(self) -> aiohttp.ClientSession:
        if self.__session is MISSING or self.__session.closed:
            self.__session = aiohttp.ClientSession(connector=self.connector, connector_owner=self.connector is None)
        return self.__session

    async def request(
            self,
            route: Route,
            *,
            action: str,
            envelope_on_error: bool = False,
            **kwargs: Any,
    ) -> Any:
        """|coro|
        发送请求并解开响应信封。

        ``envelope_on_error`` 为 ``True`` 时，非 2xx 的 JSON 响应仍按信封处理，
        服务器的错误信息会以 :exc:`ProtocolError` 的形式抛出。
        """
        method = route.method
        url = self.api_url + route.path

        headers: Dict[str, str] = {
            'User-Agent': self.user_agent,
        }

        if self.token is not None:
            headers['authorization'] = self.token

        # Checking if it's a JSON request
        if 'json' in kwargs:
            headers['content-type'] = 'application/json'
            kwargs['data'] = utils._to_json(kwargs.pop('json'))

        kwargs['headers'] = headers

        # Proxy support
        if self.proxy is not None:
            kwargs['proxy'] = self.proxy
        if self.proxy_auth is not None:
            kwargs['proxy_auth'] = self.proxy_auth

        async with self._session.request(method, url, **kwargs) as response:
            _log.debug('%s %s 与 %s 已返回 %s', method, url, kwargs.get('data'), response.status)

            # even errors have text involved in them so this is safe to call
            data = await json_or_text(response)

            if not 300 > response.status >= 200:
                if not (envelope_on_error and isinstance(data, dict)):
                    _raise_for_status(response, data, route)

        if not isinstance(data, dict) or 'error' not in data:
            raise ProtocolError(action, -1, '无效的响应信封')

        envelope: Envelope = data  # type: ignore
        if envelope['error'] != 0:
            raise ProtocolError(action, envelope['error'], envelope.get('message'))

        _log.debug('%s %s 已收到 %s', method, url, envelope.get('payload'))
        return envelope.get('payload')

    async def close(self) -> None:
        if self.__session:
            await self.__session.close()

    async def ws_connect(self, url: str, token: str) -> aiohttp.ClientWebSocketResponse:
        kwargs = {
            'proxy_auth': self.proxy_auth,
            'proxy': self.proxy,
            'max_msg_size': 0,
            'timeout': 30.0,
            'autoclose': False,
            # the gateway takes the token as the websocket subprotocol
            'protocols': (token,),
            'headers': {
                'User-Agent': self.user_agent,
            },
        }

        return await self._session.ws_connect(url, **kwargs)

    # 登录

    async def login(self, username: str, password: str) -> LoginResponse:
        payload = {'username': username, 'password': password}
        try:
            data = await self.request(
                Route('POST', '/auth/login'), action='登录', envelope_on_error=True, json=payload
            )
        except ProtocolError as exc:
            raise LoginFailure(str(exc)) from exc
        except Forbidden as exc:
            raise LoginFailure('传递了不正确的凭据。') from exc

        self.token = data['token']
        return data

    # 数据

    def get_user(self, user_id: str) -> Response[user.User]:
        if not self.token:
            _log.warning('未登录，预计会有更严格的速率限制')
        return self.request(Route('GET', '/data/user/{user_id}', user_id=user_id), action='获取用户')

    def get_channel(self, channel_id: str) -> Response[channel.Channel]:
        if not self.token:
            raise AuthRequired('获取子频道')
        return self.request(Route('GET', '/data/channel/{channel_id}', channel_id=channel_id), action='获取子频道')

    def get_guild(self, guild_id: str) -> Response[guild.Guild]:
        if not self.token:
            raise AuthRequired('获取频道')
        return self.request(Route('GET', '/data/guild/{guild_id}', guild_id=guild_id), action='获取频道')

    def logs_from(self, channel_id: str) -> Response[message.MessageHistory]:
        if not self.token:
            raise AuthRequired('获取消息')
        r = Route('GET', '/data/messages/{channel_id}', channel_id=channel_id)
        return self.request(r, action='获取消息', envelope_on_error=True)

    def send_message(self, guild_id: str, channel_id: str, content: str) -> Response[message.Message]:
        if not self.token:
            raise AuthRequired('发送消息')
        payload: message.PostMessage = {
            'guildId': guild_id,
            'channelId': channel_id,
            'content': content,
        }
        return self.request(Route('POST', '/message/post'), action='发送消息', envelope_on_error=True, json=payload)

