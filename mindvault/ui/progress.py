"""Terminal progress helpers with Rich-based rendering."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.status import Status
from rich.text import Text


@dataclass
class ProgressState:
    total: int
    current: int = 0
    label: str = ""


class RateColumn(ProgressColumn):
    """
    显示整理速率的自定义列

    渲染每分钟处理的条目数量，格式为 "X.X 条/分"
    """

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed * 60:.1f} 条/分", style="progress.percentage")


class ProgressReporter:
    """Observer for batch enrichment: ``reporter(current, total, label)``.

    Progress is purely observational; the reporter never influences the
    pipeline. Outside a terminal it degrades to silently tracking state.
    """

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self.state: ProgressState | None = None

    def __enter__(self) -> "ProgressReporter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __call__(self, current: int, total: int, label: str) -> None:
        state = self.state if self.state is not None else self.start(total, label)
        state.total = total
        state.current = min(current, total)
        state.label = label
        if self._progress is not None and self._task_id is not None:
            self._progress.update(
                self._task_id, completed=state.current, total=total, label=label
            )

    def start(self, total: int, label: str = "") -> ProgressState:
        self.state = ProgressState(total=total, label=label)
        if not self.enabled:
            return self.state
        if self._console is None:
            self._console = Console()
        if not self._console.is_terminal:
            # 非交互环境回退为静默模式，避免重复打印
            self.enabled = False
            return self.state
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            RateColumn(),
            refresh_per_second=8,
            expand=True,
            transient=True,
            console=self._console,
        )
        try:
            self._progress.start()
        except LiveError:
            # 同一控制台已存在活动进度条，退化为静默模式
            self.enabled = False
            self._progress = None
            return self.state
        self._task_id = self._progress.add_task("enrich", total=total, label=label)
        return self.state

    def close(self) -> None:
        # 确保停止 Rich Live，避免终端残留状态
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
        self._task_id = None

    def summary(self) -> dict[str, int]:
        if not self.state:
            return {"current": 0, "total": 0}
        return {"current": self.state.current, "total": self.state.total}


class ProgressActivity:
    """Indeterminate activity indicator using Rich Status spinner."""

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self.console = console or Console()
        self._status: Status | None = None

    def __enter__(self) -> "ProgressActivity":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self, message: str) -> None:
        if not self.enabled or self._status is not None:
            return
        self._status = self.console.status(message)
        self._status.start()

    def update(self, message: str) -> None:
        if self._status is not None:
            self._status.update(message)

    def close(self) -> None:
        """关闭进度活动指示器"""
        if self._status is not None:
            self._status.stop()
            self._status = None


__all__ = ["ProgressActivity", "ProgressReporter", "ProgressState"]
