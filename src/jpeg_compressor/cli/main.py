"""命令行入口。"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Tuple

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table

from jpeg_compressor.core.config import PROFILES, Profile, SessionConfig, resolve_profile
from jpeg_compressor.core.exceptions import InvalidConfigurationError
from jpeg_compressor.core.models import STATUS_DONE, STATUS_FAILED, StoreChange, StoreSnapshot, SubmitResult, Upload
from jpeg_compressor.core.report import write_csv_report
from jpeg_compressor.core.store import ItemStateStore
from jpeg_compressor.core.uploads import collect_uploads
from jpeg_compressor.processing.batch import BatchProcessor
from jpeg_compressor.utils.formatting import format_megabytes, format_ratio
from jpeg_compressor.utils.logging import setup_logging

app = typer.Typer(help="JPEG 批量压缩工具。")

STATUS_LABELS = {
    "pending": "等待中",
    "processing": "压缩中",
    "done": "完成",
    "failed": "失败",
}


def _build_store_observer(progress: Progress):
    task_ids: Dict[str, TaskID] = {}

    def observer(change: StoreChange) -> None:
        for item_id in change.item_ids:
            item = change.snapshot.get(item_id)
            if item is None:
                continue
            if item_id not in task_ids:
                task_ids[item_id] = progress.add_task(item.name, total=100)
            label = STATUS_LABELS.get(item.status, item.status)
            progress.update(task_ids[item_id], completed=item.progress, description=f"{item.name} [{label}]")
            if item.status == STATUS_FAILED:
                progress.log(f"{item.name} 压缩失败：{item.message}")

    return observer


async def _run_session(
    uploads: List[Upload],
    config: SessionConfig,
    profile: Profile,
    output_dir: Path,
    progress: Progress,
) -> Tuple[SubmitResult, StoreSnapshot]:
    store = ItemStateStore()
    processor = BatchProcessor(store, config=config, profile=profile)
    store.subscribe(_build_store_observer(progress))
    try:
        result = processor.submit(uploads)
        await processor.wait_idle()
        snapshot = store.snapshot()
        for item in snapshot.items:
            if item.status == STATUS_DONE and item.artifact is not None:
                item.artifact.save(output_dir / item.download_name)
    finally:
        await processor.close()
    return result, snapshot


@app.command("run")
def run_cli(
    source: List[Path] = typer.Argument(..., help="JPEG 文件或目录，可指定多个"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    profile_name: str = typer.Option("medium", "--profile", "-p", help="压缩档位 high/medium/low"),
    allow_recursive: bool = typer.Option(False, "--recursive/--no-recursive", help="是否递归扫描目录"),
    pacing_delay: float = typer.Option(0.5, "--pacing", help="相邻图片之间的间隔秒数"),
    progress_interval: float = typer.Option(0.05, "--tick", help="模拟进度的刷新间隔秒数"),
    report_filename: str = typer.Option("report.csv", "--report", help="报告文件名"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """压缩给定的 JPEG 文件并保存为 compressed-<原文件名>。"""

    setup_logging(logging.DEBUG if verbose else logging.WARNING)

    try:
        profile = resolve_profile(profile_name)
        config = SessionConfig(
            default_profile=profile.name,
            pacing_delay=pacing_delay,
            progress_interval=progress_interval,
        )
        config.validate()
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    uploads = collect_uploads([p.expanduser() for p in source], recursive=allow_recursive)
    if not uploads:
        typer.echo("没有找到任何文件。")
        raise typer.Exit(code=1)

    output_dir = output.expanduser().resolve()
    output_dir.mkdir(parents=True, exist_ok=True)

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
    )
    with progress:
        result, snapshot = asyncio.run(_run_session(uploads, config, profile, output_dir, progress))

    report_path = write_csv_report(snapshot.items, output_dir, report_filename)

    for item in snapshot.items:
        if item.status == STATUS_DONE:
            typer.echo(
                f"{item.name}: {format_megabytes(item.original_size)} -> "
                f"{format_megabytes(item.compressed_size)}（节省 {format_ratio(item.saved_ratio)}）"
            )
    if result.rejected_count:
        typer.echo(f"已跳过 {result.rejected_count} 个非 JPEG 文件：{', '.join(result.rejected)}")
    typer.echo(
        f"处理完成：成功 {snapshot.count(STATUS_DONE)} 张，失败 {snapshot.count(STATUS_FAILED)} 张，"
        f"拒绝 {result.rejected_count} 个。"
    )
    typer.echo(f"报告文件：{report_path}")


@app.command("profiles")
def list_profiles() -> None:
    """列出可用的压缩档位。"""

    table = Table(title="压缩档位")
    table.add_column("名称")
    table.add_column("说明")
    table.add_column("体积上限")
    table.add_column("最长边")
    for profile in PROFILES.values():
        table.add_row(profile.name, profile.label, f"{profile.max_size_mb:g} MB", f"{profile.max_dimension} px")
    Console().print(table)


@app.command("gui")
def launch_gui() -> None:
    """启动图形界面。"""

    from jpeg_compressor.gui.app import run_gui

    run_gui()


if __name__ == "__main__":
    app()
