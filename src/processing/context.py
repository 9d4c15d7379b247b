"""
Builds the LLM context for an item and its discussion
"""
from typing import List

from core.entities import CommentNode, Item
from processing.text import strip_html


def format_comments_for_context(comments: List[CommentNode], depth: int = 0) -> str:
    """
    Render a discussion thread as an indented transcript.
    Deleted comments (no author or no text) are skipped with their replies.
    """
    result = ""
    indent = "  " * depth

    for comment in comments:
        if not (comment.user and comment.content):
            continue

        content = strip_html(comment.content)
        result += f"{indent}**{comment.user}:**\n"
        result += "\n".join(f"{indent}{line}" for line in content.split("\n"))
        result += "\n\n"

        if comment.comments:
            result += format_comments_for_context(comment.comments, depth + 1)

    return result


def build_item_context(item: Item) -> str:
    url = item.url or item.discussion_url

    context = "# Story Being Discussed\n\n"
    context += f"**Title:** {item.title}\n"
    context += f"**URL:** {url}\n"
    if item.domain:
        context += f"**Domain:** {item.domain}\n"
    if item.points:
        context += f"**Points:** {item.points:g}\n"
    if item.user:
        context += f"**Posted by:** {item.user}\n"
    context += f"**Comments:** {item.comments_count}\n\n"

    if item.content:
        context += f"## Story Text\n\n{strip_html(item.content)}\n\n"

    if item.comments:
        context += "# Hacker News Discussion\n\n"
        context += "The following are comments from the Hacker News community discussing this story:\n\n"
        context += format_comments_for_context(item.comments)

    return context


def build_chat_system_prompt(item: Item) -> str:
    return f"""You are helping a user understand and discuss a Hacker News story.

{build_item_context(item)}

---

IMPORTANT CONTEXT DISTINCTION:
- The "Story Being Discussed" section above contains metadata about the linked article/content
- The "Hacker News Discussion" section contains community comments ABOUT that story
- Clearly distinguish between what the article says and what commenters say about it

The user is reading this in a terminal app. Be concise but insightful."""
