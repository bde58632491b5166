"""
终端输出工具

基于 rich 渲染运行摘要，日志仍走 logging
"""
from typing import List, Sequence

from rich.console import Console
from rich.table import Table

from snapshot_ci.core.models import ShardResult
from snapshot_ci.core.schema import RunStatus
from snapshot_ci.lib.bundle import is_diff_path


console = Console()

_STATUS_STYLE = {
    RunStatus.SUCCESS: "[green]✓ success[/green]",
    RunStatus.FAILURE: "[red]✗ failure[/red]",
}


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")


def print_shard_table(results: Sequence[ShardResult], diff_marker: str) -> None:
    """打印各分片的状态、产出文件数与 diff 文件数"""
    table = Table(title="分片结果", show_header=True, header_style="bold magenta")
    for col in ("分片", "状态", "文件数", "diff"):
        table.add_column(col)

    rows: List[List[str]] = []
    for r in results:
        diffs = sum(1 for p in r.output_bundle if is_diff_path(p, diff_marker))
        rows.append([
            f"{r.shard_index + 1}",
            _STATUS_STYLE[r.status],
            str(len(r.output_bundle)),
            str(diffs) if diffs else "-",
        ])
    for row in rows:
        table.add_row(*row)

    console.print(table)
