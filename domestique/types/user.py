from typing import TypedDict


class User(TypedDict):
    username: str
    displayName: str
    verified: int
    isAdmin: int
