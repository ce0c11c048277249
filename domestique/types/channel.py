from typing import TypedDict


class Channel(TypedDict):
    id: str
    name: str
    topic: str
    guildId: str
