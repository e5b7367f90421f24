"""Chat tutor replies and flashcard generation on top of a TextGenerator."""

import json
import logging
import re
from typing import Any, List, NamedTuple, Optional, Sequence

from studybuddy.core.exceptions import GenerationError, ValidationError
from studybuddy.modules.ai.gemini import TextGenerator
from studybuddy.modules.ai.schemas import Flashcard, HistoryMessage, TutorResponse, Turn

logger = logging.getLogger(__name__)

TUTOR_PREAMBLE = (
    "You are an AI study tutor. Help students learn by providing clear, educational explanations.\n"
    "Be friendly, encouraging, and focus on helping them understand concepts.\n"
    "If they ask something outside of academics, politely redirect them to study-related topics."
)

TUTOR_FALLBACK = "I'm sorry, I couldn't come up with an answer right now. Please try asking again in a moment."

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
_ENUMERATION = re.compile(r"^\d+[\.\)]\s*")
_QUESTION_PREFIX = re.compile(r"^Q:\s*", re.IGNORECASE)
_ANSWER_PREFIX = re.compile(r"^A:\s*", re.IGNORECASE)


def history_to_turns(history: Optional[Sequence[HistoryMessage]]) -> List[Turn]:
    return [Turn(role="user" if msg.isUser else "model", text=msg.content) for msg in history or []]


async def chat_reply(generator: TextGenerator, message: str, history: Optional[Sequence[Turn]] = None) -> str:
    if not message or not message.strip():
        raise ValidationError("Message is required")
    turns = list(history or [])
    turns.append(Turn(role="user", text=f"{TUTOR_PREAMBLE}\n\nStudent: {message}"))
    return await generator.generate(turns, temperature=0.7, max_output_tokens=1000)


async def tutor_reply(generator: TextGenerator, message: str, history: Optional[Sequence[Turn]] = None) -> TutorResponse:
    """chat_reply for a transcript: generation failures become a fallback message"""
    try:
        return TutorResponse(response=await chat_reply(generator, message, history))
    except GenerationError as e:
        logger.warning(f"Tutor reply failed, using fallback: {e.message}")
        return TutorResponse(response=TUTOR_FALLBACK, is_fallback=True)


class ParsedFlashcards(NamedTuple):
    cards: List[Flashcard]
    source: str  # json | lines | placeholder
    padded: int


def _cards_from_json(text: str) -> List[Flashcard]:
    match = _JSON_ARRAY.search(text)
    if not match:
        return []
    try:
        items: Any = json.loads(match.group(0))
    except ValueError:
        return []
    if not isinstance(items, list):
        return []
    cards = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        cards.append(Flashcard(
            question=str(item.get("question") or f"Question {index + 1}"),
            answer=str(item.get("answer") or "Answer not available"),
        ))
    return cards


def _cards_from_lines(text: str, count: int) -> List[Flashcard]:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    cards = []
    for i in range(0, len(lines), 2):
        if len(cards) >= count:
            break
        question = _QUESTION_PREFIX.sub("", _ENUMERATION.sub("", lines[i])).strip()
        answer = "Answer not available"
        if i + 1 < len(lines):
            answer = _ANSWER_PREFIX.sub("", lines[i + 1]).strip() or answer
        if question:
            cards.append(Flashcard(question=question, answer=answer))
    return cards


def placeholder_card(topic: str) -> Flashcard:
    return Flashcard(
        question=f"What is an important concept about {topic}?",
        answer=f"This is a key concept related to {topic} that you should study.",
    )


def parse_flashcards(text: str, topic: str, count: int) -> ParsedFlashcards:
    """Always exactly `count` cards: JSON array, then line pairs, then placeholders"""
    cards = _cards_from_json(text)
    source = "json"
    if not cards:
        cards = _cards_from_lines(text, count)
        source = "lines" if cards else "placeholder"
    cards = cards[:count]
    padded = count - len(cards)
    cards.extend(placeholder_card(topic) for _ in range(padded))
    return ParsedFlashcards(cards=cards, source=source, padded=padded)


def flashcard_prompt(topic: str, count: int) -> str:
    return (
        f'Generate {count} educational flashcards about "{topic}".\n'
        'Format your response as a JSON array where each item has "question" and "answer" fields.\n'
        "Make the questions clear and the answers comprehensive but concise.\n"
        'Example format: [{"question": "What is X?", "answer": "X is..."}, ...]'
    )


async def generate_flashcards(generator: TextGenerator, topic: str, count: int = 5) -> List[Flashcard]:
    topic = (topic or "").strip()
    if not topic:
        raise ValidationError("Please enter a topic")
    if count < 1:
        raise ValidationError("Flashcard count must be positive")

    text = await generator.generate(
        [Turn(role="user", text=flashcard_prompt(topic, count))],
        temperature=0.8,
        max_output_tokens=2000,
    )
    parsed = parse_flashcards(text, topic, count)
    if parsed.source != "json" or parsed.padded:
        logger.info(f"Flashcards for {topic!r} parsed from {parsed.source}, {parsed.padded} placeholder(s)")
    return parsed.cards
