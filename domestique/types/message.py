from typing import List, TypedDict


class Message(TypedDict):
    messageId: str
    authorId: str
    guildId: str
    channelId: str
    timestamp: int
    content: str


class MessageHistory(TypedDict):
    messages: List[Message]


class PostMessage(TypedDict):
    guildId: str
    channelId: str
    content: str
