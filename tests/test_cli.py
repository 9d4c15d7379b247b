"""Tests for the command line settings flags."""

import contextlib
import io
import tempfile
import unittest
from pathlib import Path

from rich.console import Console

from cli.run import apply_settings_args, parse_args
from display.console import ConsoleDisplay
from services import config
from services.config import DEFAULT_SETTINGS


class TestParseArgs(unittest.TestCase):

    def test_set_collects_assignments(self):
        args = parse_args(["--set", "min_points=60", "--set", "comment_weight=1.5"])

        self.assertEqual(args.assignments, [("min_points", 60.0), ("comment_weight", 1.5)])

    def test_set_rejects_unknown_key(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                parse_args(["--set", "colour=3"])

    def test_set_rejects_missing_value(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                parse_args(["--set", "min_points"])

    def test_reset_accepts_only_known_keys(self):
        self.assertEqual(parse_args(["--reset", "max_posts"]).reset_keys, ["max_posts"])

        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                parse_args(["--reset", "colour"])


class TestApplySettingsArgs(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_dir = Path(self.temp_dir.name)
        self.output = io.StringIO()
        self.display = ConsoleDisplay(Console(file=self.output, width=160))

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_no_settings_flags(self):
        self.assertFalse(apply_settings_args(parse_args([]), self.display, self.config_dir))
        self.assertEqual(self.output.getvalue(), "")

    def test_set_saves_snapped_value_and_marks_it(self):
        args = parse_args(["--set", "min_points=57"])

        self.assertTrue(apply_settings_args(args, self.display, self.config_dir))

        self.assertEqual(config.load_settings(self.config_dir).min_points, 60)
        text = self.output.getvalue()
        self.assertIn("Story Filtering", text)
        self.assertIn("Min Points", text)
        self.assertIn("60*", text)
        self.assertNotIn("All settings are at their defaults", text)

    def test_listing_with_defaults(self):
        apply_settings_args(parse_args(["--settings"]), self.display, self.config_dir)

        text = self.output.getvalue()
        self.assertIn("Comment Weight", text)
        self.assertIn("0.75", text)
        self.assertNotIn("*", text)
        self.assertIn("All settings are at their defaults", text)

    def test_reset_single_key(self):
        config.update_setting("max_posts", 10, self.config_dir)
        config.update_setting("min_comments", 50, self.config_dir)

        apply_settings_args(parse_args(["--reset", "max_posts"]), self.display, self.config_dir)

        settings = config.load_settings(self.config_dir)
        self.assertEqual(settings.max_posts, DEFAULT_SETTINGS.max_posts)
        self.assertEqual(settings.min_comments, 50)

    def test_reset_settings_runs_before_assignments(self):
        config.update_setting("max_posts", 10, self.config_dir)

        args = parse_args(["--reset-settings", "--set", "hours_window=48"])
        apply_settings_args(args, self.display, self.config_dir)

        settings = config.load_settings(self.config_dir)
        self.assertEqual(settings.max_posts, DEFAULT_SETTINGS.max_posts)
        self.assertEqual(settings.hours_window, 48)


if __name__ == '__main__':
    unittest.main()
