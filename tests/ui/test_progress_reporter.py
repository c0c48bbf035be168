from __future__ import annotations

import io

from rich.console import Console

from mindvault.ui import ProgressActivity, ProgressReporter


def _plain_console() -> Console:
    return Console(file=io.StringIO(), force_terminal=False)


def test_reporter_tracks_state_when_not_a_terminal() -> None:
    reporter = ProgressReporter(enabled=True, console=_plain_console())
    reporter(1, 3, "正在整理")
    assert reporter.enabled is False
    reporter(5, 3, "正在整理")
    assert reporter.summary() == {"current": 3, "total": 3}
    reporter.close()


def test_reporter_renders_on_terminal() -> None:
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=True, width=100)
    with ProgressReporter(enabled=True, console=console) as reporter:
        reporter(1, 2, "AI 整理")
        reporter(2, 2, "AI 整理")
        assert reporter.enabled is True
    assert reporter.summary() == {"current": 2, "total": 2}


def test_first_update_reuses_started_state() -> None:
    reporter = ProgressReporter(enabled=False)
    state = reporter.start(4, "准备")
    reporter(2, 4, "整理中")
    assert reporter.state is state
    assert (state.current, state.total, state.label) == (2, 4, "整理中")


def test_disabled_reporter_is_silent() -> None:
    reporter = ProgressReporter(enabled=False)
    assert reporter.summary() == {"current": 0, "total": 0}
    reporter(1, 1, "x")
    assert reporter.summary() == {"current": 1, "total": 1}


def test_activity_spinner_lifecycle() -> None:
    activity = ProgressActivity(enabled=False, console=_plain_console())
    activity.start("working")
    activity.update("still working")
    activity.close()

    with ProgressActivity(enabled=True, console=_plain_console()) as spinner:
        spinner.start("验证中")
        spinner.update("仍在验证")
