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
import json
import re
from typing import Any, Callable, Iterable, Optional, TypeVar, overload

__all__ = (
    'find',
    'utcnow',
    'parse_time',
    'to_millis',
)

T = TypeVar('T')

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


class _MissingSentinel:
    def __eq__(self, other):
        return False

    def __bool__(self):
        return False

    def __repr__(self):
        return '...'


MISSING: Any = _MissingSentinel()

try:
    import orjson
except ModuleNotFoundError:
    HAS_ORJSON = False
else:
    HAS_ORJSON = True

if HAS_ORJSON:

    def _to_json(obj: Any) -> str:  # type: ignore
        return orjson.dumps(obj).decode('utf-8')


    _from_json = orjson.loads  # type: ignore

else:

    def _to_json(obj: Any) -> str:
        return json.dumps(obj, separators=(',', ':'), ensure_ascii=True)


    _from_json = json.loads


def utcnow() -> datetime.datetime:
    """一个辅助函数，用于返回表示当前时间的 UTC datetime。

    Returns
    --------
    :class:`datetime.datetime`
        UTC 中的当前感知日期时间。
    """
    return datetime.datetime.now(datetime.timezone.utc)


@overload
def parse_time(timestamp: None) -> None:
    ...


@overload
def parse_time(timestamp: int) -> datetime.datetime:
    ...


def parse_time(timestamp: Optional[int]) -> Optional[datetime.datetime]:
    """将毫秒时间戳转换为 UTC 感知的 :class:`datetime.datetime`。"""
    if timestamp is None:
        return None
    return datetime.datetime.fromtimestamp(int(timestamp) / 1000, tz=datetime.timezone.utc)


def to_millis(dt: datetime.datetime) -> int:
    """返回 ``dt`` 对应的毫秒时间戳，即 :func:`parse_time` 的逆操作。"""
    return int(dt.timestamp() * 1000)


def now_millis() -> int:
    return to_millis(utcnow())


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def find(predicate: Callable[[T], Any], seq: Iterable[T]) -> Optional[T]:
    """返回在满足 predicate 的序列中找到的第一个元素的帮助器。例如： ::

        guild = domestique.utils.find(lambda g: g.name == 'Foo', guilds)

    如果未找到条目，则返回 ``None`` 。
    这与 :func:`py:filter` 不同，因为它在找到有效条目时停止。

    Parameters
    -----------
    predicate
        返回类似布尔值的结果的函数。
    seq: :class:`collections.abc.Iterable`
        要搜索的可迭代对象。
    """

    for element in seq:
        if predicate(element):
            return element
    return None
