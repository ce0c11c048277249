from typing import Any, TypedDict


class _EnvelopeOptional(TypedDict, total=False):
    message: str


class Envelope(_EnvelopeOptional):
    error: int
    payload: Any


class LoginResponse(TypedDict):
    token: str
    userId: str
