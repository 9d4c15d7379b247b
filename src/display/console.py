"""
Console display built on rich
"""
from typing import Collection, List, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from core.entities import CommentNode, GenerationKind, Item
from core.schemas import SummaryResult
from display.base import Display, GenerationUpdate
from processing.text import strip_html, truncate_text
from services.config import SETTING_CATEGORIES, SETTING_RANGES, FilterConfig, format_setting_value


class ConsoleDisplay(Display):
    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def render_items(self, items: List[Item], selected_index: int = -1) -> None:
        table = Table(title="Hacker News", show_lines=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Title")
        table.add_column("Domain", style="dim")
        table.add_column("Points", justify="right")
        table.add_column("Comments", justify="right")

        for index, item in enumerate(items):
            marker = "›" if index == selected_index else str(index + 1)
            table.add_row(
                marker,
                truncate_text(item.title, 80),
                item.domain or "",
                f"{item.points or 0:g}",
                str(item.comments_count),
            )

        self.console.print(table)

    def _add_comments(self, tree: Tree, comments: List[CommentNode]) -> None:
        for comment in comments:
            author = comment.user or "[deleted]"
            body = truncate_text(strip_html(comment.content or ""), 300)
            branch = tree.add(Text.assemble((author, "bold orange3"), "\n", body))
            self._add_comments(branch, comment.comments)

    def render_settings(self, settings: FilterConfig, modified: Collection[str]) -> None:
        """
        Settings grouped by category. Values that differ from the
        defaults are marked with *.
        """
        table = Table(title="Settings")
        table.add_column("Setting")
        table.add_column("Key", style="dim")
        table.add_column("Value", justify="right")
        table.add_column("Range", style="dim")

        for category, keys in SETTING_CATEGORIES.items():
            table.add_row(Text(category, style="bold"), "", "", "")
            for key in keys:
                range_ = SETTING_RANGES[key]
                value = format_setting_value(key, getattr(settings, key))
                if key in modified:
                    value = f"{value}*"
                table.add_row(
                    f"  {range_.label}",
                    key,
                    value,
                    f"{range_.min:g}..{range_.max:g} step {range_.step:g}",
                )

        self.console.print(table)
        if not modified:
            self.console.print("All settings are at their defaults.", style="dim")

    def render_item(self, item: Item) -> None:
        header = Text.assemble(
            (item.title, "bold"), "\n",
            (item.url or item.discussion_url, "blue underline"), "\n",
            f"{item.points or 0:g} points · {item.comments_count} comments",
        )
        self.console.print(Panel(header))

        if item.content:
            self.console.print(strip_html(item.content))

        tree = Tree("Discussion")
        self._add_comments(tree, item.comments)
        self.console.print(tree)

    def render_loading(self, item_id: int, kind: GenerationKind, frame: str) -> None:
        self.console.print(f"{frame} Generating {kind.value}...", end="\r", highlight=False)

    def clear_loading(self, item_id: int, kind: GenerationKind) -> None:
        self.console.print(" " * 40, end="\r")

    def render_update(self, update: GenerationUpdate) -> None:
        if update.error:
            self.console.print(Panel(
                f"{update.error}\n\nRegenerate to try again.",
                title=f"{update.kind.value} failed",
                border_style="red",
            ))
            return

        if isinstance(update.result, SummaryResult):
            body = f"{update.result.subject_summary}\n\n[bold]Discussion[/bold]\n{update.result.discussion_summary}"
            self.console.print(Panel(body, title="TL;DR", border_style="green"))
        elif update.result:
            questions = "\n".join(f"› {q}" for q in update.result)
            self.console.print(Panel(questions, title="Suggested questions", border_style="cyan"))

    def render_chat(self, item_id: int, text: str, done: bool) -> None:
        if done:
            self.console.print(Markdown(text))
