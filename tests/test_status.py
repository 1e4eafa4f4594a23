"""Tests for dockterm.pty.status.StatusOverlay."""

from __future__ import annotations

from dockterm.pty.status import StatusOverlay

from conftest import FakeTerminal


class TestStatusOverlay:
    def test_show_is_single_bracketed_write(self) -> None:
        term = FakeTerminal(rows=30, cols=100)
        overlay = StatusOverlay(term)
        overlay.show("Pulling image")
        assert len(term.output) == 1
        out = term.output[0]
        assert out.startswith("\x1b[s\x1b[30;1H\x1b[2K")
        assert "\x1b[46m\x1b[30m Status: Pulling image \x1b[0m" in out
        assert out.endswith("\x1b[u")
        assert overlay.current == "Pulling image"

    def test_row_follows_resize(self) -> None:
        term = FakeTerminal(rows=24)
        overlay = StatusOverlay(term)
        overlay.show("a")
        term.rows = 40
        overlay.show("b")
        assert "\x1b[24;1H" in term.output[0]
        assert "\x1b[40;1H" in term.output[1]

    def test_long_message_is_truncated(self) -> None:
        term = FakeTerminal(cols=30)
        overlay = StatusOverlay(term)
        overlay.show("x" * 100)
        assert overlay.current is not None
        assert overlay.current.endswith("...")
        assert len(overlay.current) < 30

    def test_clear(self) -> None:
        term = FakeTerminal(rows=24)
        overlay = StatusOverlay(term)
        overlay.show("busy")
        overlay.clear()
        assert overlay.current is None
        assert term.output[-1] == "\x1b[s\x1b[24;1H\x1b[2K\x1b[u"
