from typing import List

from pydantic import BaseModel, Field


class PublishRequest(BaseModel):
    message: str

class PublishResponse(BaseModel):
    # streams served from another thread count once the hand-off is scheduled,
    # even if their queue later turns out to be full
    delivered: int = Field(description="streams the message was handed to; full queues are not counted")

class EchoResponse(BaseModel):
    normal: str
    shouty: str
    charCount: int
    backwards: str

    @classmethod
    def from_input(cls, text: str) -> "EchoResponse":
        return cls(normal=text, shouty=text.upper(), charCount=len(text), backwards=text[::-1])

class JsonResponse(BaseModel):
    text: str = "hi"
    numbers: List[int] = [1, 2, 3]

class HealthResponse(BaseModel):
    uptime_sec: int
    subscribers: int
    ts: str

class StatsResponse(BaseModel):
    subscribers: int
    messages: int
    dropped: int
