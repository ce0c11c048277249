from typing import List, TypedDict


class Guild(TypedDict):
    id: str
    name: str
    topic: str
    channelIds: List[str]
