import logging
import re

from core.entities import Item
from core.schemas import SummaryResult
from processing.context import build_item_context
from services.llm import ModelTier, TextBackend

logger = logging.getLogger(__name__)

DISCUSSION_SEPARATOR = "---DISCUSSION---"

SUMMARY_SYSTEM_PROMPT = f"""You are summarizing a Hacker News story for a terminal app. Be extremely concise.

IMPORTANT: Output ONLY the summary. Do not include any thinking, planning, or meta-commentary like "I need to...", "Let me...", "I'll...", etc.

Format your response exactly like this (use the exact separator):
[2-3 sentences summarizing the article. Key points only.]
{DISCUSSION_SEPARATOR}
[2-3 sentences summarizing the HN discussion. Main themes and notable opinions only.]

Rules:
- No headers, labels, or markdown formatting
- No preamble, intro text, or thinking out loud
- Keep each section to 2-3 sentences maximum
- Use exactly "{DISCUSSION_SEPARATOR}" as the separator between sections
- Start immediately with the article summary content"""

# Leading sentences that narrate the model's plan rather than summarize
THINKING_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^I need to .+?\.",
        r"^I('ll| will) .+?\.",
        r"^Let me .+?\.",
        r"^First,? I .+?\.",
        r"^To .+?, I .+?\.",
        r"^I should .+?\.",
        r"^I'm going to .+?\.",
        r"^Now I .+?\.",
        r"^Based on .+?, I .+?\.",
    )
]

DISCUSSION_INDICATORS = [
    re.compile(r"\n\n(?:The discussion|Discussion|Comments|HN comments|The HN discussion)", re.IGNORECASE),
    re.compile(r"\n\n(?:Commenters|Users|Readers)", re.IGNORECASE),
]


def strip_thinking(text: str) -> str:
    result = text.strip()

    changed = True
    while changed:
        changed = False
        for pattern in THINKING_PATTERNS:
            match = pattern.match(result)
            if match:
                result = result[match.end():].strip()
                changed = True
                break

    return result


def parse_summary_response(response: str) -> SummaryResult:
    """
    Split a raw model response into subject and discussion summaries.
    """
    parts = response.split(DISCUSSION_SEPARATOR)
    subject = strip_thinking(parts[0])
    discussion = strip_thinking(parts[1]) if len(parts) > 1 else ""

    if len(parts) == 1 and subject:
        for indicator in DISCUSSION_INDICATORS:
            match = indicator.search(subject)
            if match:
                discussion = subject[match.start():].strip()
                subject = subject[:match.start()].strip()
                break

        if not discussion:
            logger.warning("No discussion separator found in summary response")

    return SummaryResult(subject_summary=subject, discussion_summary=discussion)


async def generate_summary(backend: TextBackend, item: Item) -> SummaryResult:
    prompt = f"Please provide a TLDR for this story and its discussion.\n\n{build_item_context(item)}"

    raw = await backend.complete(SUMMARY_SYSTEM_PROMPT, [], prompt, ModelTier.CHEAP)
    logger.info(f"Summary generated for item {item.id}, length: {len(raw)}")

    result = parse_summary_response(raw)
    if not result.subject_summary and not result.discussion_summary:
        raise ValueError("Empty summary response")
    return result
