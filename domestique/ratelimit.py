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
import enum
import logging
from typing import Any, Dict, List, Optional, Set

import aiohttp

from .error import ClientException
from .http import DEFAULT_API_URL, bucket_for
from .utils import MISSING, now_millis

__all__ = (
    'QueueOrder',
    'RequestQueue',
)

_log = logging.getLogger(__name__)


class QueueOrder(enum.Enum):
    """:class:`RequestQueue` 选择下一个请求的方式。

    ``newest`` 取出并发送最后入队的请求，完成后再丢弃队首的请求，这是服务端原有客户端的行为。
    被丢弃的请求不会发送，它的 future 会得到 :exc:`ClientException` 。
    ``fifo`` 按入队顺序取出并发送请求，不会丢弃任何请求。

    两种方式下每个请求最多成功发送一次，只有 HTTP 429 会让同一个请求重新发送。
    """

    newest = 'newest'
    fifo = 'fifo'


class _PendingRequest:
    __slots__ = ('method', 'path', 'kwargs', 'future')

    def __init__(self, method: str, path: str, kwargs: Dict[str, Any], future: asyncio.Future) -> None:
        self.method: str = method
        self.path: str = path
        self.kwargs: Dict[str, Any] = kwargs
        self.future: asyncio.Future = future

    def __repr__(self) -> str:
        return f'<_PendingRequest {self.method} {self.path}>'


class _Bucket:
    __slots__ = ('key', 'pending', 'inflight', 'cooldown', 'locked', 'handle')

    def __init__(self, key: str) -> None:
        self.key: str = key
        self.pending: List[_PendingRequest] = []
        self.inflight: Optional[_PendingRequest] = None
        # epoch milliseconds until which nothing may be sent
        self.cooldown: int = 0
        self.locked: bool = False
        self.handle: Optional[asyncio.TimerHandle] = None

    def remaining(self) -> int:
        return max(self.cooldown - now_millis(), 0)


class RequestQueue:
    """按类别排队并遵守速率限制的请求分发器。

    类别是路由的前两段路径（例如 ``/api/v0``）。每个类别有自己的待处理列表、冷却时间和锁。
    收到 HTTP 429 时，从 ``X-Timeout-Remaining-Milliseconds`` 读取冷却时间，
    冷却结束后重新发送同一个请求。

    Parameters
    -----------
    api_url: :class:`str`
        API 的基础地址。
    token: Optional[:class:`str`]
        放入 ``authorization`` 头的令牌。
    order: :class:`QueueOrder`
        选择下一个请求的方式。默认为 :attr:`QueueOrder.newest` 。
    session: Optional[:class:`aiohttp.ClientSession`]
        使用的会话。如果未提供，会在第一次请求时创建并由队列负责关闭。
    """

    RATELIMIT_HEADER = 'X-Timeout-Remaining-Milliseconds'

    def __init__(
            self,
            api_url: str = DEFAULT_API_URL,
            *,
            token: Optional[str] = None,
            order: QueueOrder = QueueOrder.newest,
            session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.api_url: str = api_url.rstrip('/')
        self.token: Optional[str] = token
        self.order: QueueOrder = order
        self._session: aiohttp.ClientSession = session or MISSING
        self._owns_session: bool = session is None
        self._buckets: Dict[str, _Bucket] = {}
        self._tasks: Set[asyncio.Task] = set()

    def _get_bucket(self, path: str) -> _Bucket:
        key = bucket_for(path)
        try:
            return self._buckets[key]
        except KeyError:
            bucket = _Bucket(key)
            self._buckets[key] = bucket
            return bucket

    def pending(self, path: str) -> int:
        """返回 ``path`` 所在类别中尚未完成的请求数量。"""
        bucket = self._buckets.get(bucket_for(path))
        if bucket is None:
            return 0
        return len(bucket.pending) + (bucket.inflight is not None)

    def fetch(self, path: str, method: str = 'GET', **kwargs: Any) -> asyncio.Future:
        """将请求放入队列。

        返回一个 :class:`asyncio.Future` ，请求完成时得到 :class:`aiohttp.ClientResponse`
        （响应体已读取），传输失败时得到对应的异常。
        """
        loop = asyncio.get_running_loop()
        bucket = self._get_bucket(path)
        future = loop.create_future()
        bucket.pending.append(_PendingRequest(method, path, kwargs, future))
        if not bucket.remaining():
            self._start_drain(bucket)
        return future

    def _start_drain(self, bucket: _Bucket) -> None:
        bucket.handle = None
        task = asyncio.get_running_loop().create_task(self._drain(bucket))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule_drain(self, bucket: _Bucket, delay: float) -> None:
        if bucket.handle is not None:
            bucket.handle.cancel()
        bucket.handle = asyncio.get_running_loop().call_later(delay, self._start_drain, bucket)

    def _take(self, bucket: _Bucket) -> _PendingRequest:
        if self.order is QueueOrder.fifo:
            request = bucket.pending.pop(0)
        else:
            request = bucket.pending.pop()
        bucket.inflight = request
        return request

    def _requeue(self, bucket: _Bucket, request: _PendingRequest) -> None:
        # back to the slot it was taken from so the same request goes next
        bucket.inflight = None
        if self.order is QueueOrder.fifo:
            bucket.pending.insert(0, request)
        else:
            bucket.pending.append(request)

    def _finish(self, bucket: _Bucket) -> None:
        bucket.inflight = None
        if self.order is QueueOrder.newest and bucket.pending:
            dropped = bucket.pending.pop(0)
            _log.debug('类别 %s 丢弃了尚未发送的请求 %r', bucket.key, dropped)
            if not dropped.future.done():
                dropped.future.set_exception(ClientException(f'请求 {dropped.method} {dropped.path} 已被队列丢弃'))
        bucket.locked = False
        if bucket.pending:
            self._start_drain(bucket)

    async def _drain(self, bucket: _Bucket) -> None:
        if bucket.locked or not bucket.pending:
            return

        remaining = bucket.remaining()
        if remaining:
            self._schedule_drain(bucket, remaining / 1000)
            return

        bucket.locked = True
        request = self._take(bucket)
        try:
            response = await self._send(request)
        except (OSError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            if not request.future.done():
                request.future.set_exception(exc)
            self._finish(bucket)
            return
        except BaseException:
            bucket.inflight = None
            if not request.future.done():
                self._requeue(bucket, request)
            bucket.locked = False
            raise

        if response.status == 429:
            timeout = int(response.headers.get(self.RATELIMIT_HEADER) or 0)
            bucket.cooldown = now_millis() + timeout
            self._requeue(bucket, request)
            bucket.locked = False
            _log.warning('类别 %s 受速率限制，%d 毫秒后重试 %r', bucket.key, timeout, request)
            self._schedule_drain(bucket, timeout / 1000)
            return

        if not request.future.done():
            request.future.set_result(response)
        self._finish(bucket)

    async def _send(self, request: _PendingRequest) -> aiohttp.ClientResponse:
        if self._session is MISSING or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        kwargs = dict(request.kwargs)
        headers: Dict[str, str] = dict(kwargs.pop('headers', None) or {})
        if self.token is not None:
            headers['authorization'] = self.token
        kwargs['headers'] = headers

        url = self.api_url + request.path
        async with self._session.request(request.method, url, **kwargs) as response:
            # load the body so it survives the connection being released
            await response.read()
            _log.debug('%s %s 已返回 %s', request.method, url, response.status)
            return response

    async def close(self) -> None:
        """|coro|
        停止所有类别的分发。尚未完成的请求的 future 会被取消。
        """
        for bucket in self._buckets.values():
            if bucket.handle is not None:
                bucket.handle.cancel()
                bucket.handle = None
            unfinished = list(bucket.pending)
            if bucket.inflight is not None:
                unfinished.append(bucket.inflight)
            bucket.pending.clear()
            bucket.inflight = None
            for request in unfinished:
                if not request.future.done():
                    request.future.cancel()
        for task in list(self._tasks):
            task.cancel()
        if self._owns_session and self._session:
            await self._session.close()
