import json

import pytest

from studybuddy.config import settings
from studybuddy.core.exceptions import GenerationError, ValidationError
from studybuddy.main import app
from studybuddy.modules.ai.generators import (
    TUTOR_FALLBACK, TUTOR_PREAMBLE, chat_reply, generate_flashcards, parse_flashcards, tutor_reply
)
from studybuddy.modules.ai.gemini import GeminiGenerator
from studybuddy.modules.ai.routes import get_text_generator
from studybuddy.modules.ai.schemas import Turn
from tests.conftest import run
from tests.fakes import ScriptedGenerator, failing_generator


def test_chat_reply_sends_history_and_preamble():
    generator = ScriptedGenerator("Entropy measures disorder.")
    history = [Turn(role="user", text="hi"), Turn(role="model", text="Hello! What are we studying?")]

    reply = run(chat_reply(generator, "What is entropy?", history))

    assert reply == "Entropy measures disorder."
    request = generator.requests[0]
    assert request["temperature"] == 0.7
    assert request["max_output_tokens"] == 1000
    turns = request["turns"]
    assert turns[:2] == history
    assert turns[-1].role == "user"
    assert turns[-1].text.startswith(TUTOR_PREAMBLE)
    assert turns[-1].text.endswith("Student: What is entropy?")


def test_chat_reply_rejects_empty_message():
    generator = ScriptedGenerator("unused")
    with pytest.raises(ValidationError):
        run(chat_reply(generator, "  "))
    assert generator.requests == []


def test_chat_reply_propagates_generation_error():
    with pytest.raises(GenerationError):
        run(chat_reply(failing_generator(), "What is entropy?"))


def test_tutor_reply_substitutes_fallback():
    reply = run(tutor_reply(failing_generator(), "What is entropy?"))
    assert reply.is_fallback
    assert reply.response == TUTOR_FALLBACK


def test_flashcards_from_json_block():
    cards = [{"question": f"Q{i}?", "answer": f"A{i}"} for i in range(7)]
    text = "Sure! Here are your cards:\n```json\n" + json.dumps(cards) + "\n```"

    parsed = parse_flashcards(text, "Physics", 5)

    assert parsed.source == "json"
    assert [c.question for c in parsed.cards] == ["Q0?", "Q1?", "Q2?", "Q3?", "Q4?"]
    assert parsed.padded == 0


def test_flashcards_json_missing_fields_are_filled():
    parsed = parse_flashcards('[{"question": "What is mass?"}, {"answer": "9.8 m/s^2"}]', "Physics", 2)
    assert parsed.cards[0].answer == "Answer not available"
    assert parsed.cards[1].question == "Question 2"


def test_flashcards_from_question_answer_lines():
    text = "1. Q: What is DNA?\nA: A molecule carrying genetic instructions.\n\n2) Q: What is RNA?\nA: A single-stranded nucleic acid."

    parsed = parse_flashcards(text, "Biology", 2)

    assert parsed.source == "lines"
    assert parsed.cards[0].question == "What is DNA?"
    assert parsed.cards[0].answer == "A molecule carrying genetic instructions."
    assert parsed.cards[1].question == "What is RNA?"


def test_flashcards_malformed_json_falls_back_to_lines():
    text = "[not json\nWhat is a cell?\nThe basic unit of life."
    parsed = parse_flashcards(text, "Biology", 3)
    assert parsed.source == "lines"
    assert len(parsed.cards) == 3
    assert parsed.padded == 1


def test_flashcards_from_prose_always_returns_count():
    text = "Photosynthesis turns light into chemical energy. It happens in chloroplasts."
    cards = run(generate_flashcards(ScriptedGenerator(text), "Biology", 5))

    assert len(cards) == 5
    assert cards[0].question == text
    assert all(c.question and c.answer for c in cards)
    assert "Biology" in cards[-1].question


def test_flashcards_from_empty_output_are_placeholders():
    parsed = parse_flashcards("", "World History", 4)
    assert parsed.source == "placeholder"
    assert len(parsed.cards) == 4
    assert all("World History" in c.question for c in parsed.cards)


def test_generate_flashcards_validates_input():
    generator = ScriptedGenerator("[]")
    with pytest.raises(ValidationError):
        run(generate_flashcards(generator, " ", 5))
    with pytest.raises(ValidationError):
        run(generate_flashcards(generator, "Physics", 0))
    assert generator.requests == []


def test_generate_flashcards_request_options():
    generator = ScriptedGenerator('[{"question": "q", "answer": "a"}]')
    run(generate_flashcards(generator, "Physics", 1))
    request = generator.requests[0]
    assert request["temperature"] == 0.8
    assert request["max_output_tokens"] == 2000
    assert '"Physics"' in request["turns"][0].text


def test_chat_route_reports_generation_error(client):
    app.dependency_overrides[get_text_generator] = lambda: failing_generator()
    response = client.post("/api/v1/ai/chat", json={"message": "hi", "history": []})
    assert response.status_code == 500
    assert response.json() == {"error": "quota exceeded"}


def test_chat_route_maps_history(client):
    generator = ScriptedGenerator("Newton's second law: F = ma.")
    app.dependency_overrides[get_text_generator] = lambda: generator
    response = client.post("/api/v1/ai/chat", json={
        "message": "And the second law?",
        "history": [{"isUser": True, "content": "Explain Newton's laws"}, {"isUser": False, "content": "Sure."}],
    })
    assert response.status_code == 200
    assert response.json() == {"response": "Newton's second law: F = ma."}
    assert [t.role for t in generator.requests[0]["turns"]] == ["user", "model", "user"]


def test_tutor_route_never_fails(client):
    app.dependency_overrides[get_text_generator] = lambda: failing_generator()
    response = client.post("/api/v1/ai/tutor", json={"message": "hi"})
    assert response.status_code == 200
    assert response.json() == {"response": TUTOR_FALLBACK, "is_fallback": True}


def test_flashcards_route(client):
    app.dependency_overrides[get_text_generator] = lambda: ScriptedGenerator("no structure here")
    response = client.post("/api/v1/ai/flashcards", json={"topic": "Chemistry", "count": 5})
    assert response.status_code == 200
    assert len(response.json()) == 5


def test_missing_api_key_reported_on_generate(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)
    generator = GeminiGenerator()
    with pytest.raises(GenerationError):
        run(generator.generate([Turn(role="user", text="hi")]))


def test_routes_without_api_key(client, monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)

    tutor = client.post("/api/v1/ai/tutor", json={"message": "What is entropy?"})
    assert tutor.status_code == 200
    assert tutor.json() == {"response": TUTOR_FALLBACK, "is_fallback": True}

    chat = client.post("/api/v1/ai/chat", json={"message": "What is entropy?"})
    assert chat.status_code == 500
    assert chat.json() == {"error": "Gemini API key is not configured. Set GEMINI_API_KEY."}
