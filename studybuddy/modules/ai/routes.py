import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from studybuddy.core.dependencies import get_current_user_id
from studybuddy.core.exceptions import GenerationError
from studybuddy.modules.ai.gemini import GeminiGenerator, TextGenerator
from studybuddy.modules.ai.generators import chat_reply, generate_flashcards, history_to_turns, tutor_reply
from studybuddy.modules.ai.schemas import ChatRequest, ChatResponse, Flashcard, FlashcardRequest, TutorResponse
from typing import Dict, List

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


def get_text_generator() -> TextGenerator:
    return GeminiGenerator()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user_data: Dict = Depends(get_current_user_id),
    generator: TextGenerator = Depends(get_text_generator)
):
    """Tutor reply; 500 with {"error": ...} when generation fails"""
    try:
        text = await chat_reply(generator, request.message, history_to_turns(request.history))
    except GenerationError as e:
        return JSONResponse(status_code=500, content={"error": e.message})
    return ChatResponse(response=text)


@router.post("/tutor", response_model=TutorResponse)
async def tutor(
    request: ChatRequest,
    user_data: Dict = Depends(get_current_user_id),
    generator: TextGenerator = Depends(get_text_generator)
):
    """Tutor reply for the chat transcript; never fails on generation errors"""
    return await tutor_reply(generator, request.message, history_to_turns(request.history))


@router.post("/flashcards", response_model=List[Flashcard])
async def flashcards(
    request: FlashcardRequest,
    user_data: Dict = Depends(get_current_user_id),
    generator: TextGenerator = Depends(get_text_generator)
):
    """Generate exactly `count` flashcards about a topic"""
    return await generate_flashcards(generator, request.topic, request.count)
