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

__all__ = (
    'Client',
    'Listener',
)

import asyncio
import logging
from typing import Optional, Any, Dict, Callable, List, Tuple, Coroutine, TypeVar, Set, TYPE_CHECKING

import aiohttp

from .cache import RemoteEntityCache
from .error import ClientException, ConnectionClosed, HandshakeTimeout, LoginFailure
from .gateway import DomestiqueWebSocket, DEFAULT_WS_URL
from .guild import Guild, GuildManager
from .http import HTTPClient, DEFAULT_API_URL
from .state import ConnectionState, GatewayStatus
from .user import ClientUser, User
from .utils import MISSING

if TYPE_CHECKING:
    from types import TracebackType

_log = logging.getLogger(__name__)
Coro = TypeVar('Coro', bound=Callable[..., Coroutine[Any, Any, Any]])


class Listener:
    """:meth:`Client.add_listener` 返回的句柄。

    调用 :meth:`remove` 或者作为上下文管理器使用即可取消监听： ::

        with client.add_listener(on_message, 'message'):
            await client.wait_until_ready()

    Attributes
    -----------
    event: :class:`str`
        监听的事件名称，不带 ``on_`` 前缀。
    func
        被调用的协程函数。
    once: :class:`bool`
        是否在第一次调用后自动移除。
    """

    __slots__ = ('event', 'func', 'once', '_client')

    def __init__(self, client: Client, event: str, func: Callable[..., Coroutine[Any, Any, Any]], once: bool):
        self._client: Client = client
        self.event: str = event
        self.func: Callable[..., Coroutine[Any, Any, Any]] = func
        self.once: bool = once

    def __repr__(self) -> str:
        return f'<Listener event={self.event!r} func={self.func.__qualname__} once={self.once}>'

    @property
    def active(self) -> bool:
        """:class:`bool`: 监听器是否仍然注册在客户端上。"""
        return self in self._client._extra_events.get(self.event, ())

    def remove(self) -> None:
        self._client.remove_listener(self)

    def __enter__(self) -> Listener:
        return self

    def __exit__(
            self,
            exc_type: Optional[type],
            exc: Optional[BaseException],
            traceback: Optional[TracebackType],
    ) -> None:
        self.remove()


def _event_name(name: str) -> str:
    return name[3:] if name.startswith('on_') else name


class Client:
    r"""代表了客户端与聊天服务之间的连接。
    此类用于与 WebSocket 和 API 进行交互。

    Parameters
    -----------
    ws_url: :class:`str`
        网关地址。默认为 ``wss://api.chat.eqilia.eu/api/v0/live/ws`` 。
    api_url: :class:`str`
        REST API 地址。默认为 ``https://api.chat.eqilia.eu`` 。
    reconnect: :class:`bool`
        连接关闭时是否使用已有的令牌重新连接。默认为 ``True`` 。
    handshake_timeout: :class:`float`
        :meth:`login_token` 等待 ``authStatus`` 的最大秒数。默认为 ``5.0`` 。
    reconnect_delay: :class:`float`
        重新连接前等待的秒数。默认为 ``1.0`` 。
    connector: Optional[:class:`aiohttp.BaseConnector`]
        用于连接池的连接器。
    proxy: Optional[:class:`str`]
        代理网址。
    proxy_auth: Optional[:class:`aiohttp.BasicAuth`]
        代表代理 HTTP 基本授权的对象。

    Attributes
    -----------
    ws
        客户端当前连接到的 websocket 网关。可能是 ``None`` 。
    """

    def __init__(self, **options: Any):
        self.ws: Optional[DomestiqueWebSocket] = None
        self.ws_url: str = options.pop('ws_url', DEFAULT_WS_URL)
        self.reconnect: bool = options.pop('reconnect', True)
        self.handshake_timeout: float = options.pop('handshake_timeout', 5.0)
        self.reconnect_delay: float = options.pop('reconnect_delay', 1.0)
        self._listeners: Dict[str, List[Tuple[asyncio.Future, Callable[..., bool]]]] = {}
        self._extra_events: Dict[str, List[Listener]] = {}
        self._tasks: Set[asyncio.Task] = set()

        self._handlers: Dict[str, Callable] = {
            'ready': self._handle_ready
        }

        api_url: str = options.pop('api_url', DEFAULT_API_URL)
        connector: Optional[aiohttp.BaseConnector] = options.pop('connector', None)
        proxy: Optional[str] = options.pop('proxy', None)
        proxy_auth: Optional[aiohttp.BasicAuth] = options.pop('proxy_auth', None)
        self.http: HTTPClient = HTTPClient(api_url, connector, proxy=proxy, proxy_auth=proxy_auth)

        self._connection: ConnectionState = self._get_state(**options)
        self._closed: bool = False
        self._ready: asyncio.Event = asyncio.Event()
        # set after a close until the next ready, a second close in that window is final
        self._recovering: bool = False
        self._connect_task: Optional[asyncio.Task] = None

    def _get_state(self, **options: Any) -> ConnectionState:
        return ConnectionState(dispatch=self.dispatch, handlers=self._handlers, http=self.http, **options)

    def _handle_ready(self) -> None:
        self._recovering = False
        self._ready.set()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type],
            exc: Optional[BaseException],
            traceback: Optional[TracebackType],
    ) -> None:
        if not self.is_closed():
            await self.close()

    # 事件

    async def on_error(self, event_method: str, *args: Any, **kwargs: Any) -> None:
        """|coro|
        客户端提供的默认错误处理程序。
        默认情况下，这会把异常记录到 ``domestique.client`` 日志中，但是它可以被覆盖以使用不同的实现。
        """
        _log.exception('忽略 %s 中的异常', event_method)

    async def _run_event(self, coro: Callable[..., Coroutine[Any, Any, Any]], event_name: str, *args: Any,
                         **kwargs: Any) -> None:
        try:
            await coro(*args, **kwargs)
        except asyncio.CancelledError:
            pass
        except Exception:
            try:
                await self.on_error(event_name, *args, **kwargs)
            except asyncio.CancelledError:
                pass

    def _schedule_event(self, coro: Callable[..., Coroutine[Any, Any, Any]], event_name: str, *args: Any,
                        **kwargs: Any) -> asyncio.Task:
        wrapped = self._run_event(coro, event_name, *args, **kwargs)
        # Schedules the task
        task = asyncio.create_task(wrapped, name=f'domestique.py: {event_name}')
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def dispatch(self, event: str, *args: Any, **kwargs: Any) -> None:
        _log.debug('分派事件 %s', event)
        method = 'on_' + event

        listeners = self._listeners.get(event)
        if listeners:
            removed = []
            for i, (future, condition) in enumerate(listeners):
                if future.done():
                    removed.append(i)
                    continue

                try:
                    result = condition(*args)
                except Exception as exc:
                    future.set_exception(exc)
                    removed.append(i)
                else:
                    if result:
                        if len(args) == 0:
                            future.set_result(None)
                        elif len(args) == 1:
                            future.set_result(args[0])
                        else:
                            future.set_result(args)
                        removed.append(i)

            if len(removed) == len(listeners):
                self._listeners.pop(event)
            else:
                for idx in reversed(removed):
                    del listeners[idx]

        for listener in list(self._extra_events.get(event, ())):
            if listener.once:
                self.remove_listener(listener)
            self._schedule_event(listener.func, method, *args, **kwargs)

        try:
            coro = getattr(self, method)
        except AttributeError:
            pass
        else:
            self._schedule_event(coro, method, *args, **kwargs)

    def event(self, coro: Coro) -> Coro:
        """注册要监听的事件的装饰器。
        事件必须是 :ref:`协程 <coroutine>` ，如果不是，则引发 :exc:`TypeError` 。

        Example
        ---------
        .. code-block:: python3

            @client.event
            async def on_ready():
                print('Ready!')

        Raises
        --------
        TypeError
            coro 需要是协程但实际上并不是协程。
        """

        if not asyncio.iscoroutinefunction(coro):
            raise TypeError('注册的事件必须是协程函数')

        setattr(self, coro.__name__, coro)
        _log.debug('%s 已成功注册为事件', coro.__name__)
        return coro

    def add_listener(self, func: Callable[..., Coroutine[Any, Any, Any]], name: str = MISSING, *,
                     once: bool = False) -> Listener:
        """:meth:`listen` 的非装饰器替代品。

        Parameters
        -----------
        func: :ref:`coroutine <coroutine>`
            要调用的函数。
        name: :class:`str`
            要监听的事件的名称，可以带 ``on_`` 前缀。默认为 ``func.__name__`` 。
        once: :class:`bool`
            是否只调用一次。

        Returns
        --------
        :class:`Listener`
            用于移除监听器的句柄。
        """
        name = func.__name__ if name is MISSING else name

        if not asyncio.iscoroutinefunction(func):
            raise TypeError('监听器必须是协程')

        listener = Listener(self, _event_name(name), func, once)
        self._extra_events.setdefault(listener.event, []).append(listener)
        return listener

    def remove_listener(self, listener: Listener) -> None:
        """从监听器池中删除一个监听器。重复删除不会产生任何效果。"""
        listeners = self._extra_events.get(listener.event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            pass
        if not listeners:
            del self._extra_events[listener.event]

    def listen(self, name: str = MISSING) -> Callable[[Coro], Coro]:
        """将另一个函数注册为外部事件监听器的装饰器。

        Example
        --------

        .. code-block:: python3

            @client.listen()
            async def on_message(event):
                print('one')

            @client.listen('message')
            async def my_message(event):
                print('two')
        """

        def decorator(func: Coro) -> Coro:
            self.add_listener(func, name)
            return func

        return decorator

    def wait_for(
            self,
            event: str,
            *,
            check: Optional[Callable[..., bool]] = None,
            timeout: Optional[float] = None,
    ) -> Any:
        """|coro|
        等待调度一个事件。

        ``timeout`` 参数传递给 :func:`asyncio.wait_for`。默认情况下，它不会超时。
        该函数返回 **第一个符合要求的事件** 。

        Parameters
        ------------
        event: :class:`str`
            事件名称，不带 ``on_`` 前缀。
        check: Optional[Callable[..., :class:`bool`]]
            检查等待什么的检查函数。
        timeout: Optional[:class:`float`]
            在超时和引发 :exc:`asyncio.TimeoutError` 之前等待的秒数。
        """
        future = self._add_waiter(event, check)
        return asyncio.wait_for(future, timeout)

    def _add_waiter(self, event: str, check: Optional[Callable[..., bool]] = None) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        if check is None:
            def _check(*args):
                return True

            check = _check

        self._listeners.setdefault(event.lower(), []).append((future, check))
        return future

    def _remove_waiter(self, event: str, future: asyncio.Future) -> None:
        listeners = self._listeners.get(event)
        if not listeners:
            return
        listeners[:] = [entry for entry in listeners if entry[0] is not future]
        if not listeners:
            del self._listeners[event]

    # 状态

    @property
    def user(self) -> Optional[ClientUser]:
        """Optional[:class:`.ClientUser`]: 代表连接的客户端。在 ``ready`` 之前为 ``None`` 。"""
        return self._connection.user

    @property
    def user_id(self) -> Optional[str]:
        """Optional[:class:`str`]: 登录或认证后得到的用户 ID。"""
        return self._connection.user_id

    @property
    def token(self) -> Optional[str]:
        """Optional[:class:`str`]: 当前使用的令牌。"""
        return self.http.token

    @property
    def guilds(self) -> GuildManager:
        """:class:`GuildManager`: 按需获取频道的管理器。"""
        return self._connection.guilds

    @property
    def cache(self) -> RemoteEntityCache:
        """:class:`RemoteEntityCache`: 所有组件共享的缓存。"""
        return self._connection.cache

    @property
    def status(self) -> GatewayStatus:
        """:class:`GatewayStatus`: 网关连接的当前状态。"""
        return self._connection.status

    def is_ready(self) -> bool:
        """:class:`bool`: 指定是否已经收到 ``serverFinished`` 。"""
        return self._ready.is_set()

    def is_closed(self) -> bool:
        """:class:`bool`: 指示 websocket 连接是否关闭。"""
        return self._closed

    async def wait_until_ready(self) -> None:
        """|coro|
        等到客户端完成同步。
        """
        await self._ready.wait()

    async def fetch_user(self, user_id: str, /) -> User:
        """|coro|
        获取给定 ID 的用户。结果会被缓存。
        """
        data = await self._connection.cache.get_user(user_id)
        return User(data=data)

    async def fetch_guild(self, guild_id: str, /) -> Guild:
        """|coro|
        获取给定 ID 的频道，等同于 ``client.guilds.get(guild_id)`` 。
        """
        return await self._connection.guilds.get(guild_id)

    # 登录和连接

    async def _disconnect(self) -> None:
        task = self._connect_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        if self.ws is not None and self.ws.open:
            await self.ws.close()

    async def login(self, username: str, password: str) -> None:
        """|coro|
        使用用户名和密码登录，保存得到的令牌。这不会连接网关。

        Raises
        ------
        :exc:`.LoginFailure`
            传递了错误的凭据。
        :exc:`.HTTPException`
            发生未知的 HTTP 相关错误。
        """
        await self._disconnect()
        _log.info('以 %s 登录', username)
        data = await self.http.login(username, password)
        self._connection.user_id = data['userId']

    async def login_token(self, token: str, *, reconnect: Optional[bool] = None) -> None:
        """|coro|
        使用已有的令牌连接网关，并等待 ``authStatus`` 数据包。

        网关在后台继续运行，直到 :meth:`close` 。

        Raises
        ------
        :exc:`.LoginFailure`
            服务器拒绝了令牌。
        :exc:`.HandshakeTimeout`
            在 ``handshake_timeout`` 秒内没有收到 ``authStatus`` 。
        :exc:`.ConnectionClosed`
            收到 ``authStatus`` 之前连接被关闭。
        """
        await self._disconnect()
        self.http.token = token

        future = self._add_waiter('auth_status')
        task = self._start_connect(reconnect)
        try:
            done, _ = await asyncio.wait(
                {future, task}, timeout=self.handshake_timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            self._remove_waiter('auth_status', future)
            if not future.done():
                future.cancel()

        if future in done:
            payload = future.result()['payload']
            if not payload.get('success'):
                raise LoginFailure(str(payload.get('error')))
            return

        if task in done:
            # re-raises whatever ended the connection
            task.result()
            raise ConnectionClosed(None)

        raise HandshakeTimeout(self.handshake_timeout)

    def _start_connect(self, reconnect: Optional[bool]) -> asyncio.Task:
        if reconnect is None:
            reconnect = self.reconnect
        task = asyncio.create_task(self.connect(reconnect=reconnect), name='domestique.py: connect')
        task.add_done_callback(self._connect_done)
        self._connect_task = task
        return task

    def _connect_done(self, task: asyncio.Task) -> None:
        if self._connect_task is task:
            self._connect_task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _log.error('网关连接已终止', exc_info=exc)

    async def connect(self, *, reconnect: bool = True) -> None:
        """|coro|
        创建一个 websocket 连接并处理网关数据包。在 WebSocket 连接终止之前，不会恢复控制。

        Parameters
        -----------
        reconnect: :class:`bool`
            连接关闭时是否使用同一个令牌重新连接。连接在重新就绪之前再次关闭时不会继续重连。

        Raises
        -------
        :exc:`.ClientException`
            尚未登录。
        :exc:`.ConnectionClosed`
            websocket 连接已终止且无法恢复。
        """
        if not self.http.token:
            raise ClientException('登录前无法连接')

        while not self.is_closed():
            try:
                coro = DomestiqueWebSocket.from_client(self)
                self.ws = await asyncio.wait_for(coro, timeout=60.0)
                while True:
                    await self.ws.poll_event()
            except (OSError,
                    ConnectionClosed,
                    aiohttp.ClientError,
                    asyncio.TimeoutError) as exc:

                self.dispatch('disconnect')
                self._ready.clear()
                if self.is_closed():
                    return

                if not reconnect or not self.http.token:
                    await self.close()
                    if isinstance(exc, ConnectionClosed):
                        return
                    raise

                if self._recovering:
                    _log.warning('重新连接后在就绪前再次断开，不再重试。')
                    await self.close()
                    raise

                self._recovering = True
                self._connection._set_status(GatewayStatus.reconnecting)
                self._connection.clear()
                _log.info('尝试在 %.2fs 中重新连接', self.reconnect_delay)
                await asyncio.sleep(self.reconnect_delay)

    async def start(self, username: str, password: str, *, reconnect: Optional[bool] = None) -> None:
        """|coro|
        :meth:`login` + :meth:`connect` 的协程。
        """
        await self.login(username, password)
        await self.connect(reconnect=self.reconnect if reconnect is None else reconnect)

    def run(self, username: str, password: str, *, reconnect: Optional[bool] = None) -> None:
        """一个阻塞调用，它从你那里抽象出事件循环初始化。

        .. warning::

            由于它是阻塞的，因此该函数必须是最后一个调用的函数。
        """

        async def runner():
            try:
                await self.start(username, password, reconnect=reconnect)
            finally:
                if not self.is_closed():
                    await self.close()

        try:
            asyncio.run(runner())
        except KeyboardInterrupt:
            _log.info('接收到终止机器人和事件循环的信号。')

    async def close(self) -> None:
        """|coro|
        关闭与服务器的连接。
        """
        if self._closed:
            return

        self._closed = True
        self._connection._set_status(GatewayStatus.closed)

        await self._disconnect()
        await self.http.close()
        self._ready.clear()
