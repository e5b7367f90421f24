from pydantic import BaseModel, Field
from typing import List, Literal, Optional


class Turn(BaseModel):
    role: Literal["user", "model"]
    text: str


class HistoryMessage(BaseModel):
    """Chat transcript entry as the web client stores it"""
    isUser: bool
    content: str


class ChatRequest(BaseModel):
    message: str
    history: Optional[List[HistoryMessage]] = None


class ChatResponse(BaseModel):
    response: str


class TutorResponse(BaseModel):
    response: str
    is_fallback: bool = False


class Flashcard(BaseModel):
    question: str
    answer: str


class FlashcardRequest(BaseModel):
    topic: str
    count: int = Field(default=5, ge=1, le=50)
