"""Tests for HTML cleanup, prompt context and response parsing."""

import unittest

from core.schemas import ChatMessage
from processing.context import build_chat_system_prompt, build_item_context, format_comments_for_context
from processing.suggestions import build_follow_up_prompt, parse_questions
from processing.summarizer import parse_summary_response, strip_thinking
from processing.text import strip_html, truncate_text
from core.entities import CommentNode
from tests.fakes import make_comment, make_item


class TestText(unittest.TestCase):

    def test_strip_html(self):
        html = '<p>First &amp; foremost</p><p>See <a href="https://x.io">x.io</a><br>now</p>'
        self.assertEqual(strip_html(html), "First & foremost\n\nSee x.io (https://x.io)\nnow")

    def test_strip_html_code(self):
        self.assertEqual(strip_html("use <code>ls -la</code>"), "use `ls -la`")

    def test_strip_html_feed_paragraphs_and_entities(self):
        self.assertEqual(strip_html("It&#x27;s fine<p>Second&nbsp;point"), "It's fine\n\nSecond point")

    def test_strip_html_preformatted_block(self):
        text = strip_html("Try:<pre><code>x = 1\n</code></pre>")

        self.assertIn("```\nx = 1", text)
        self.assertTrue(text.endswith("```"))

    def test_strip_html_link_with_same_label(self):
        self.assertEqual(strip_html('<a href="https://x.io">https://x.io</a>'), "https://x.io")

    def test_truncate_text(self):
        self.assertEqual(truncate_text("short", 10), "short")
        self.assertEqual(truncate_text("a" * 20, 10), "aaaaaaa...")


class TestContext(unittest.TestCase):

    def test_comments_are_indented_by_depth(self):
        root = make_comment(1, children=[make_comment(2, level=1)])

        text = format_comments_for_context([root])

        self.assertIn("**user1:**\nComment 1", text)
        self.assertIn("  **user2:**\n  Comment 2", text)

    def test_deleted_comments_are_skipped(self):
        deleted = CommentNode(id=3, user=None, content=None, comments=[make_comment(4, level=1)])

        self.assertEqual(format_comments_for_context([deleted]), "")

    def test_item_context(self):
        item = make_item(1, title="Alpha launch", points=120, comments=[make_comment(9)])

        context = build_item_context(item)

        self.assertIn("**Title:** Alpha launch", context)
        self.assertIn("**Points:** 120", context)
        self.assertIn("# Hacker News Discussion", context)
        self.assertIn("Comment 9", context)

    def test_item_without_url_links_to_discussion(self):
        item = make_item(42).model_copy(update={"url": ""})

        self.assertIn("news.ycombinator.com/item?id=42", build_item_context(item))

    def test_chat_prompt_embeds_context(self):
        prompt = build_chat_system_prompt(make_item(1, title="Alpha launch"))

        self.assertIn("Alpha launch", prompt)
        self.assertIn("terminal", prompt)


class TestSummaryParsing(unittest.TestCase):

    def test_separator_splits_sections(self):
        result = parse_summary_response("Article text.\n---DISCUSSION---\nPeople argue.")

        self.assertEqual(result.subject_summary, "Article text.")
        self.assertEqual(result.discussion_summary, "People argue.")

    def test_thinking_preamble_is_removed(self):
        self.assertEqual(strip_thinking("Let me summarize this. I need to be brief. The tool is new."), "The tool is new.")

    def test_discussion_found_without_separator(self):
        result = parse_summary_response("The tool is new.\n\nCommenters liked it.")

        self.assertEqual(result.subject_summary, "The tool is new.")
        self.assertEqual(result.discussion_summary, "Commenters liked it.")

    def test_no_discussion_section(self):
        result = parse_summary_response("Only the article.")

        self.assertEqual(result.subject_summary, "Only the article.")
        self.assertEqual(result.discussion_summary, "")


class TestSuggestions(unittest.TestCase):

    def test_markers_dropped_and_capped(self):
        text = "1. First?\n- Second?\n\n* Third?\n4) Fourth?"

        self.assertEqual(parse_questions(text), ["First?", "Second?", "Third?"])

    def test_follow_up_prompt_uses_recent_short_messages(self):
        messages = [ChatMessage(role="user", content=f"message {i}") for i in range(6)]
        messages.append(ChatMessage(role="assistant", content="x" * 600))

        prompt = build_follow_up_prompt(make_item(1, title="Alpha launch"), messages)

        self.assertIn("User: message 5", prompt)
        self.assertNotIn("message 2", prompt)
        self.assertNotIn("x" * 600, prompt)


if __name__ == '__main__':
    unittest.main()
