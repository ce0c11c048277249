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

from typing import Any, TYPE_CHECKING, List

if TYPE_CHECKING:
    from .state import ConnectionState
    from .types.user import User as UserPayload

__all__ = (
    'User',
    'ClientUser',
)


class User:
    """代表一个用户。

    .. container:: operations

        .. describe:: x == y

            检查两个用户的用户名是否相等。

        .. describe:: x != y

            检查两个用户的用户名是否不相等。

        .. describe:: str(x)

            返回用户名。

    Attributes
    -----------
    name: :class:`str`
        用户的用户名。
    display_name: :class:`str`
        用户的显示名称。
    verified: :class:`bool`
        用户是否已验证。
    admin: :class:`bool`
        用户是否为管理员。
    """

    __slots__ = (
        'name',
        'display_name',
        'verified',
        'admin',
    )

    def __init__(self, *, data: UserPayload) -> None:
        self._update(data)

    def __repr__(self) -> str:
        return f'<User name={self.name!r} display_name={self.display_name!r} admin={self.admin}>'

    def __str__(self) -> str:
        return self.name

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, User) and other.name == self.name

    def __ne__(self, other: Any) -> bool:
        return not self.__eq__(other)

    def __hash__(self) -> int:
        return hash(self.name)

    def _update(self, data: UserPayload) -> None:
        self.name: str = data['username']
        self.display_name: str = data.get('displayName') or self.name
        self.verified: bool = bool(data.get('verified'))
        self.admin: bool = bool(data.get('isAdmin'))


class ClientUser(User):
    """代表已登录的用户。

    Attributes
    -----------
    id: :class:`str`
        ``authStatus`` 数据包中给出的用户 ID。
    """

    __slots__ = ('id', '_state')

    def __init__(self, *, state: ConnectionState, user_id: str, data: UserPayload) -> None:
        super().__init__(data=data)
        self.id: str = user_id
        self._state: ConnectionState = state

    def __repr__(self) -> str:
        return f'<ClientUser id={self.id!r} name={self.name!r} admin={self.admin}>'

    @property
    def guilds(self) -> List[str]:
        """List[:class:`str`]: 网关宣布可用的频道 ID，按到达顺序排列。"""
        return self._state.available_guilds

    @property
    def channels(self) -> List[str]:
        """List[:class:`str`]: 网关宣布可用的子频道 ID，按到达顺序排列。"""
        return self._state.available_channels
