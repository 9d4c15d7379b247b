"""
Suggested questions for the chat view
"""
import logging
import re
from typing import List

from core.entities import Item
from core.schemas import ChatMessage
from processing.text import strip_html
from services.llm import ModelTier, TextBackend

logger = logging.getLogger(__name__)

MAX_QUESTIONS = 3

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def parse_questions(text: str) -> List[str]:
    """
    One question per line; list markers and numbering are dropped.
    """
    questions = []
    for line in text.split("\n"):
        question = _LIST_MARKER.sub("", line).strip()
        if question:
            questions.append(question)
    return questions[:MAX_QUESTIONS]


def build_suggestions_prompt(item: Item) -> str:
    preview = "\n".join(
        f"{c.user}: {strip_html(c.content or '')[:100]}..."
        for c in item.comments[:3]
    ) or "No comments yet"

    return f"""Based on this Hacker News story, generate {MAX_QUESTIONS} short questions (max 10 words each) a reader might want to ask. Return ONLY the {MAX_QUESTIONS} questions, one per line, no numbering or bullets.

Title: {item.title}
Domain: {item.domain or "N/A"}
Comments preview:
{preview}"""


def build_follow_up_prompt(item: Item, messages: List[ChatMessage]) -> str:
    recent = "\n".join(
        f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}"
        for m in messages[-4:]
        if len(m.content) < 500
    )

    return f"""Based on this conversation about a Hacker News story, suggest {MAX_QUESTIONS} natural follow-up questions the user might want to ask next. The questions should:
- Build on what was just discussed
- Explore related angles or deeper aspects
- Be concise (max 12 words each)

Story: "{item.title}"
Recent conversation:
{recent}

Return ONLY the {MAX_QUESTIONS} questions, one per line, no numbering or bullets."""


async def generate_suggestions(backend: TextBackend, item: Item) -> List[str]:
    text = await backend.complete("", [], build_suggestions_prompt(item), ModelTier.CHEAP)
    questions = parse_questions(text)
    logger.info(f"Generated {len(questions)} suggestions for item {item.id}")
    return questions


async def generate_follow_up_questions(
    backend: TextBackend,
    item: Item,
    messages: List[ChatMessage],
) -> List[str]:
    text = await backend.complete("", [], build_follow_up_prompt(item, messages), ModelTier.CHEAP)
    questions = parse_questions(text)
    logger.info(f"Generated {len(questions)} follow-up questions for item {item.id}")
    return questions
