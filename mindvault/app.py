"""Typer CLI entrypoint for MindVault."""

from __future__ import annotations

import sys
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import typer
import yaml
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigLocator, ConfigRepository
from .engine.analyzer import ContentAnalyzer, GeminiAnalyzer
from .engine.conflicts import ConflictAction, ConflictPair
from .engine.dedup import DuplicateGroup, RetentionPolicy
from .engine.items import VaultItem
from .engine.storage import StorageGateway
from .errors import VaultError
from .infra import KeyValueStore, mask_credential
from .logging_conf import configure_logging, log_file, tail_log
from .orchestrator import Orchestrator
from .ui import ProgressActivity, ProgressReporter

app = typer.Typer(
    help="MindVault 个人知识库命令行工具",
    no_args_is_help=True,
    rich_markup_mode=None,
)
tag_app = typer.Typer(name="tag", help="标签管理命令", no_args_is_help=True, rich_markup_mode=None)
category_app = typer.Typer(
    name="category", help="分类管理命令", no_args_is_help=True, rich_markup_mode=None
)
config_app = typer.Typer(name="config", help="配置管理命令", no_args_is_help=True, rich_markup_mode=None)
log_app = typer.Typer(name="log", help="日志查看命令", no_args_is_help=True, rich_markup_mode=None)

console = Console()

_CONFLICT_CHOICES = {
    "k": ConflictAction.KEEP,
    "keep": ConflictAction.KEEP,
    "s": ConflictAction.SKIP,
    "skip": ConflictAction.SKIP,
    "a": ConflictAction.SKIP_ALL,
    "skip-all": ConflictAction.SKIP_ALL,
}


@dataclass
class AppState:
    locator: ConfigLocator
    store: KeyValueStore
    repository: ConfigRepository
    gateway: StorageGateway
    analyzer: ContentAnalyzer
    orchestrator: Orchestrator


def build_state(verbose: bool) -> AppState:
    locator = ConfigLocator()
    configure_logging(verbose=verbose, log_dir=locator.logs_dir)
    store = KeyValueStore(locator.store_path())
    repository = ConfigRepository(store, locator)
    gateway = StorageGateway(repository, store)
    analyzer = GeminiAnalyzer(repository.load_config().analysis)
    orchestrator = Orchestrator(repository, gateway, analyzer)
    return AppState(
        locator=locator,
        store=store,
        repository=repository,
        gateway=gateway,
        analyzer=analyzer,
        orchestrator=orchestrator,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


@contextmanager
def _guard() -> Iterator[None]:
    """Translate domain errors into a red message and exit code 1."""

    try:
        yield
    except VaultError as exc:
        console.print(exc.message, style="red")
        raise typer.Exit(code=1) from exc
    except KeyError as exc:
        console.print(f"未找到条目 `{exc.args[0]}`。", style="red")
        raise typer.Exit(code=1) from exc


# 进度条策略：默认在交互式终端显示，非TTY自动降级为静默
def _progress_default_enabled() -> bool:
    return bool(getattr(sys.stdout, "isatty", lambda: False)())


def _format_time(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def _render_items_table(items: Sequence[VaultItem], title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD, show_lines=False)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("类型", style="magenta")
    table.add_column("标题", overflow="fold")
    table.add_column("分类", style="green")
    table.add_column("标签", style="yellow", overflow="fold")
    table.add_column("创建时间", style="dim", no_wrap=True)
    for item in items:
        table.add_row(
            item.id,
            item.type.value,
            item.title,
            item.effective_category,
            ", ".join(item.tags),
            _format_time(item.created_at),
        )
    return table


def _render_groups_table(groups: Sequence[DuplicateGroup]) -> Table:
    table = Table(title=f"重复链接 · 共 {len(groups)} 组", box=box.SIMPLE_HEAD)
    table.add_column("链接", style="cyan", overflow="fold")
    table.add_column("ID（新 → 旧）", style="magenta", overflow="fold")
    table.add_column("数量", style="yellow", justify="right")
    for group in groups:
        table.add_row(
            group.content,
            ", ".join(f"{item.id} ({_format_time(item.created_at)})" for item in group.items),
            str(len(group.items)),
        )
    return table


def _render_counts_table(title: str, label: str, counts: dict[str, int]) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column(label, style="cyan")
    table.add_column("数量", style="yellow", justify="right")
    for name, count in sorted(counts.items(), key=lambda pair: (-pair[1], pair[0])):
        table.add_row(name, str(count))
    return table


def _ask_conflict(pair: ConflictPair, remaining: int) -> ConflictAction:
    console.print(
        f"检测到重复链接：{pair.candidate.content}\n"
        f"  已存在：{pair.existing.title}（{pair.existing.effective_category}）\n"
        f"  待导入：{pair.candidate.title}（剩余 {remaining} 个冲突）",
        style="yellow",
    )
    while True:
        answer = typer.prompt("保留(k) / 跳过(s) / 全部跳过(a)", default="s").strip().lower()
        if answer in _CONFLICT_CHOICES:
            return _CONFLICT_CHOICES[answer]
        console.print("请输入 k、s 或 a。", style="red")


app.add_typer(tag_app, name="tag", help="查看、重命名、删除或添加标签")
app.add_typer(category_app, name="category", help="查看、删除分类或移动条目")
app.add_typer(config_app, name="config", help="查看或修改配置")
app.add_typer(log_app, name="log", help="查看日志文件")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="开启调试日志")
) -> None:
    if ctx.obj is None:
        ctx.obj = build_state(verbose)


# ----------------------------------------------------------------------
# Session
# ----------------------------------------------------------------------
@app.command("login", help="配置远端存储（先验证连接再保存）；不提供地址则使用本地模式。")
def login(
    ctx: typer.Context,
    token: str = typer.Option(..., "--token", prompt="访问密码", hide_input=True, help="远端访问 Token。"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="远端存储服务地址。"),
) -> None:
    state = _get_state(ctx)
    with _guard():
        with ProgressActivity(enabled=_progress_default_enabled()) as activity:
            activity.start("正在验证远端连接…")
            config = state.orchestrator.login(token, endpoint)
    if config.remote_enabled:
        console.print(f"已连接远端存储：{config.api_endpoint}", style="green")
    else:
        console.print("已保存 Token，当前使用本地存储模式。", style="green")


@app.command("logout", help="清除远端地址与 Token，回到本地模式。")
def logout(ctx: typer.Context) -> None:
    _get_state(ctx).orchestrator.logout()
    console.print("已退出远端存储，当前使用本地模式。", style="green")


@app.command("status", help="查看当前存储模式与配置摘要。")
def status(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = state.repository.load_config()
    table = Table(title="MindVault 状态", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("项目", style="cyan")
    table.add_column("值")
    table.add_row("存储模式", "远端" if config.remote_enabled else "本地")
    table.add_row("远端地址", config.api_endpoint or "-")
    table.add_row("Token", mask_credential(config.auth_token) if config.auth_token else "-")
    table.add_row("API Key 数量", str(len(config.enrichment_keys)))
    table.add_row("默认 API Key", "已设置" if state.repository.default_credential() else "未设置")
    table.add_row("数据目录", str(state.locator.project_root))
    with _guard():
        table.add_row("条目数量", str(len(state.orchestrator.load_items())))
    console.print(table)


# ----------------------------------------------------------------------
# Items
# ----------------------------------------------------------------------
@app.command("list", help="按时间倒序列出条目，可按标签、分类或关键字筛选。")
def list_items(
    ctx: typer.Context,
    tag: Optional[str] = typer.Option(None, "--tag", help="按标签筛选。"),
    category: Optional[str] = typer.Option(None, "--category", help="按分类筛选。"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="搜索标题、摘要与标签。"),
    limit: int = typer.Option(50, "--limit", help="最多显示条数。"),
) -> None:
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        orchestrator.load_items()
    items = orchestrator.filter_items(tag=tag, category=category, search=search)
    if not items:
        console.print("没有符合条件的条目。", style="dim")
        return
    console.print(_render_items_table(items[:limit], f"条目 · 共 {len(items)} 条"))


@app.command("add", help="添加一条链接或笔记。")
def add_item(
    ctx: typer.Context,
    content: str = typer.Argument(..., help="网址或文本内容。"),
    category: Optional[str] = typer.Option(None, "--category", help="所属分类。"),
    summary: Optional[str] = typer.Option(None, "--summary", help="个人备注。"),
    ai: bool = typer.Option(False, "--ai", help="使用 AI 生成标题、摘要与标签。"),
) -> None:
    if not content.strip():
        console.print("内容不能为空。", style="red")
        raise typer.Exit(code=1)
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        with ProgressActivity(enabled=ai and _progress_default_enabled()) as activity:
            activity.start("AI 正在分析内容…")
            item = orchestrator.add_item(content, category=category, summary=summary, analyze=ai)
    console.print(f"已添加条目 `{item.id}`：{item.title}", style="green")


@app.command("edit", help="修改条目的标题、内容、备注或分类。")
def edit_item(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="条目 ID。"),
    title: Optional[str] = typer.Option(None, "--title"),
    content: Optional[str] = typer.Option(None, "--content"),
    summary: Optional[str] = typer.Option(None, "--summary"),
    category: Optional[str] = typer.Option(None, "--category"),
) -> None:
    changes = {
        key: value
        for key, value in {
            "title": title,
            "content": content,
            "summary": summary,
            "category": category,
        }.items()
        if value is not None
    }
    if not changes:
        console.print("未指定任何修改。", style="yellow")
        raise typer.Exit(code=0)
    with _guard():
        item = _get_state(ctx).orchestrator.edit_item(item_id, **changes)
    console.print(f"条目 `{item.id}` 已更新。", style="green")


@app.command("delete", help="删除一个或多个条目。")
def delete_items(
    ctx: typer.Context,
    item_ids: List[str] = typer.Argument(..., help="条目 ID 列表。"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认。"),
) -> None:
    if not yes and not typer.confirm(f"确认删除 {len(item_ids)} 个条目？"):
        console.print("已取消删除操作。", style="yellow")
        raise typer.Exit(code=0)
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        orchestrator.load_items()
        deleted = orchestrator.delete_items(item_ids)
    console.print(f"已删除 {len(deleted)} 个条目。", style="green")


@app.command("analyze", help="使用 AI 分析单个条目（失败不重试）。")
def analyze_item(ctx: typer.Context, item_id: str = typer.Argument(..., help="条目 ID。")) -> None:
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        with ProgressActivity(enabled=_progress_default_enabled()) as activity:
            activity.start("AI 正在分析内容…")
            item = orchestrator.analyze_item(item_id)
    console.print(f"分析完成：{item.title}", style="green")
    if item.ai_summary:
        console.print(item.ai_summary, style="dim")
    console.print("标签：" + ", ".join(item.tags), style="yellow")


# ----------------------------------------------------------------------
# Import / dedup / enrich
# ----------------------------------------------------------------------
@app.command("import", help="导入结构化 JSON 导出或浏览器书签 HTML。")
def import_file(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="导入文件路径。"),
    on_conflict: Optional[ConflictAction] = typer.Option(
        None, "--on-conflict", help="非交互模式下对所有重复链接采取的操作。"
    ),
) -> None:
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        session = orchestrator.start_import(path.read_bytes(), path.name)
        console.print(
            f"解析 {session.parsed} 条，已导入 {session.persisted} 条到分类「{session.category}」。",
            style="green",
        )
        if not session.queue:
            return
        console.print(f"发现 {session.conflicts} 个重复链接。", style="yellow")
        if on_conflict is None:
            outcome = session.queue.drain(_ask_conflict)
        else:
            outcome = session.queue.drain(lambda pair, remaining: on_conflict)
    console.print(
        f"冲突处理完成：保留 {len(outcome.kept)} 条，跳过 {len(outcome.skipped)} 条。", style="green"
    )


@app.command("dedup", help="查看重复链接；指定 --keep 时批量清理。")
def dedup(
    ctx: typer.Context,
    keep: Optional[RetentionPolicy] = typer.Option(None, "--keep", help="保留最新（newest）或最早（oldest）。"),
    remove: Optional[str] = typer.Option(None, "--remove", help="手动删除某个重复条目 ID。"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认。"),
) -> None:
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        if remove:
            orchestrator.delete_items([remove])
            console.print(f"已删除条目 `{remove}`。", style="green")
            return
        groups = orchestrator.duplicate_groups()
        if not groups:
            console.print("没有发现重复链接。", style="green")
            return
        console.print(_render_groups_table(groups))
        if keep is None:
            return
        if not yes and not typer.confirm(f"按「{keep.value}」策略清理 {len(groups)} 组重复链接？"):
            console.print("已取消操作。", style="yellow")
            raise typer.Exit(code=0)
        deleted = orchestrator.deduplicate(keep)
    console.print(f"已删除 {len(deleted)} 个重复条目。", style="green")


@app.command("enrich", help="对筛选出的条目（默认全部）执行 AI 批量整理。")
def enrich(
    ctx: typer.Context,
    tag: Optional[str] = typer.Option(None, "--tag", help="按标签筛选。"),
    category: Optional[str] = typer.Option(None, "--category", help="按分类筛选。"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="搜索关键字。"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认。"),
) -> None:
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        orchestrator.load_items()
        targets = orchestrator.filter_items(tag=tag, category=category, search=search)
        if not targets:
            console.print("没有需要整理的条目。", style="dim")
            return
        if not yes and not typer.confirm(f"确认对 {len(targets)} 个条目进行 AI 整理？"):
            console.print("已取消操作。", style="yellow")
            raise typer.Exit(code=0)
        with ProgressReporter(enabled=_progress_default_enabled()) as reporter:
            report = orchestrator.enrich(targets, progress=reporter)
    console.print(
        f"AI 整理完成：成功 {report.enriched} 条，失败 {report.failed} 条，已保存 {report.persisted} 条。",
        style="green" if not report.failed else "yellow",
    )


# ----------------------------------------------------------------------
# Tags & categories
# ----------------------------------------------------------------------
@tag_app.command("list", help="列出所有标签及使用次数。")
def tag_list(ctx: typer.Context) -> None:
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        orchestrator.load_items()
    counts = orchestrator.tag_counts()
    if not counts:
        console.print("暂无标签。", style="dim")
        return
    console.print(_render_counts_table(f"标签 · 共 {len(counts)} 个", "标签", counts))


@tag_app.command("rename", help="在所有条目中重命名标签。")
def tag_rename(
    ctx: typer.Context,
    old: str = typer.Argument(..., help="原标签。"),
    new: str = typer.Argument(..., help="新标签。"),
) -> None:
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        orchestrator.load_items()
        changed = orchestrator.rename_tag(old, new)
    console.print(f"已更新 {changed} 个条目的标签。", style="green")


@tag_app.command("delete", help="删除带有该标签的所有条目。")
def tag_delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="标签名称。"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认。"),
) -> None:
    _delete_group(ctx, "tag", name, yes)


@tag_app.command("add", help="为条目添加标签。")
def tag_add(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="条目 ID。"),
    tag: str = typer.Argument(..., help="标签名称。"),
) -> None:
    with _guard():
        item = _get_state(ctx).orchestrator.add_tag(item_id, tag)
    console.print(f"条目 `{item.id}` 的标签：{', '.join(item.tags)}", style="green")


@category_app.command("list", help="列出所有分类及条目数量。")
def category_list(ctx: typer.Context) -> None:
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        orchestrator.load_items()
    counts = orchestrator.category_counts()
    if not counts:
        console.print("暂无分类。", style="dim")
        return
    console.print(_render_counts_table(f"分类 · 共 {len(counts)} 个", "分类", counts))


@category_app.command("delete", help="删除该分类下的所有条目。")
def category_delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="分类名称。"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过确认。"),
) -> None:
    _delete_group(ctx, "category", name, yes)


@category_app.command("move", help="将条目移动到指定分类。")
def category_move(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="条目 ID。"),
    category: str = typer.Argument(..., help="目标分类。"),
) -> None:
    with _guard():
        item = _get_state(ctx).orchestrator.move_to_category(item_id, category)
    console.print(f"条目 `{item.id}` 已移动到「{item.effective_category}」。", style="green")


def _delete_group(ctx: typer.Context, kind: str, name: str, yes: bool) -> None:
    label = "标签" if kind == "tag" else "分类"
    orchestrator = _get_state(ctx).orchestrator
    with _guard():
        orchestrator.load_items()
        if not yes and not typer.confirm(f"确认删除{label}「{name}」下的所有条目？"):
            console.print("已取消删除操作。", style="yellow")
            raise typer.Exit(code=0)
        deleted = orchestrator.delete_group(kind, name)
    console.print(f"已删除 {len(deleted)} 个条目。", style="green")


# ----------------------------------------------------------------------
# Config & logs
# ----------------------------------------------------------------------
@config_app.command("show", help="以 YAML 格式显示当前配置（Token 与 Key 已脱敏）。")
def config_show(ctx: typer.Context) -> None:
    payload = _get_state(ctx).repository.load_config().to_payload()
    if payload.get("authToken"):
        payload["authToken"] = mask_credential(payload["authToken"])
    payload["geminiApiKeys"] = [mask_credential(key) for key in payload.get("geminiApiKeys", [])]
    console.print(yaml.safe_dump(payload, allow_unicode=True, sort_keys=False))


@config_app.command("keys", help="设置 Gemini API Key 列表（可多个，轮换使用）。")
def config_keys(
    ctx: typer.Context,
    keys: Optional[List[str]] = typer.Argument(None, help="API Key，可用空格或逗号分隔。"),
    clear: bool = typer.Option(False, "--clear", help="清空已配置的 Key。"),
) -> None:
    repository = _get_state(ctx).repository
    if clear:
        repository.update_config(enrichment_keys=[])
        console.print("已清空 API Key。", style="green")
        return
    if not keys:
        current = repository.load_config().enrichment_keys
        if not current:
            console.print("尚未配置 API Key。", style="dim")
            return
        for index, key in enumerate(current, start=1):
            console.print(f"{index}. {mask_credential(key)}")
        return
    flattened = [part for key in keys for part in key.split(",")]
    config = repository.update_config(enrichment_keys=flattened)
    console.print(f"已保存 {len(config.enrichment_keys)} 个 API Key。", style="green")


@config_app.command("export", help="导出配置到 YAML 或 JSON 文件。")
def config_export(ctx: typer.Context, path: Path = typer.Argument(..., help="目标文件路径。")) -> None:
    try:
        target = _get_state(ctx).repository.export_config(path)
    except ValueError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1) from exc
    console.print(f"配置已导出到 {target}", style="green")


@config_app.command("import", help="从 YAML 或 JSON 文件导入配置。")
def config_import(ctx: typer.Context, path: Path = typer.Argument(..., help="配置文件路径。")) -> None:
    try:
        config = _get_state(ctx).repository.import_config(path)
    except (FileNotFoundError, ValueError, ValidationError, yaml.YAMLError) as exc:
        console.print(f"配置导入失败：{exc}", style="red")
        raise typer.Exit(code=1) from exc
    mode = "远端" if config.remote_enabled else "本地"
    console.print(f"配置已导入，当前存储模式：{mode}", style="green")


@log_app.command("show", help="查看最近的日志内容。")
def log_show(
    ctx: typer.Context,
    tail: int = typer.Option(100, "--tail", help="显示最近 N 行内容。"),
    errors: bool = typer.Option(False, "--errors", help="只看错误日志。"),
) -> None:
    path = log_file(_get_state(ctx).locator.logs_dir, errors_only=errors)
    lines = tail_log(path, tail)
    if not lines:
        console.print("暂无日志信息，请稍后再试。", style="dim")
        return
    header = f"{'错误日志' if errors else '全局日志'} · 最近 {len(lines)} 行"
    console.print(header, style="cyan")
    console.print("".join(lines))


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
