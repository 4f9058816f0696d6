from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class User(BaseModel):
    username: str
    visited_count: int = Field(0, ge=0)


class Message(BaseModel):
    username: str
    body: str
    created_at: datetime


class Credentials(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SendMessageRequest(BaseModel):
    username: str
    message: str


class LoginResponse(BaseModel):
    user: User
    messages: List[Message]


class StatusResponse(BaseModel):
    status: str = "success"
