# melaka/cli/main.py
"""Melaka CLI 的主入口点。"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.panel import Panel
from rich.table import Table

import melaka
from melaka.cli.state import State
from melaka.cli.utils import build_config_table, console, open_document_store
from melaka.config import (
    CollectionConfig,
    MelakaConfig,
    MelakaSettings,
    find_collection_config,
    resolve_effective_config,
)
from melaka.core.exceptions import ConfigurationError
from melaka.core.types import MISSING_STATUS
from melaka.logging_config import setup_logging
from melaka.persistence import TranslationRecordStore
from melaka.providers.registry import discover_providers
from melaka.schema import create_schema_from_mappings
from melaka.tasks import (
    EnqueueResult,
    LocalTaskQueue,
    TaskHandlerContext,
    enqueue_collection_translation,
    enqueue_document_translation,
    execute_translation_task,
)
from melaka.utils import validate_lang_codes

app = typer.Typer(
    name="melaka",
    help="🌏 Melaka: 基于大模型的文档翻译同步工具。",
    add_completion=False,
    no_args_is_help=True,
)

_STATUS_STYLES = {
    "completed": "green",
    "failed": "red",
    "pending": "yellow",
    MISSING_STATUS: "dim",
}


def version_callback(value: bool) -> None:
    if value:
        console.print(f"Melaka [bold cyan]v{melaka.__version__}[/bold cyan]")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="显示版本信息并退出。",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """在任何子命令执行前加载运行时设置并配置日志。"""
    try:
        settings = MelakaSettings()
        setup_logging(
            log_level=settings.logging.level, log_format=settings.logging.format
        )
        discover_providers()
        ctx.obj = State(settings=settings)
    except Exception as e:
        console.print("[bold red]❌ 启动失败：无法加载运行时设置或初始化日志。[/bold red]")
        console.print(f"[dim]{e}[/dim]")
        raise typer.Exit(code=1) from e


def _load_config_or_exit(state: State, path: Optional[Path]) -> MelakaConfig:
    try:
        return state.load_config(path)
    except ConfigurationError as e:
        console.print(f"[bold red]❌ 配置无效[/bold red]\n{e}")
        raise typer.Exit(code=1) from e


def _find_collection_or_exit(config: MelakaConfig, collection: str) -> CollectionConfig:
    collection_config = find_collection_config(config, collection)
    if collection_config is None:
        console.print(f"[bold red]❌ 集合 '{collection}' 未在配置中声明。[/bold red]")
        raise typer.Exit(code=1)
    return collection_config


ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="配置文件路径，默认取 MELAKA_CONFIG_PATH。"),
]


@app.command("validate")
def validate(ctx: typer.Context, config_path: ConfigOption = None) -> None:
    """校验配置文件并显示每个集合解析后的有效设置。"""
    state: State = ctx.obj
    config = _load_config_or_exit(state, config_path)

    console.print(
        f"[green]✅ 配置有效[/green]  语言: [bold]{', '.join(config.languages)}[/bold]"
        f"  区域: {config.region}"
    )
    console.print(build_config_table(config))

    for collection in config.collections:
        if collection.field_mappings:
            schema = create_schema_from_mappings(collection.field_mappings)
            console.print(
                f"[cyan]{collection.path}[/cyan] 映射输出字段: "
                f"{', '.join(schema.field_names) or '(无可翻译字段)'}"
            )


async def _show_status(
    state: State, config: MelakaConfig, collection: str, document_id: str
) -> None:
    document_path = f"{collection.strip('/')}/{document_id}"
    async with open_document_store(state.settings) as store:
        if await store.get(document_path) is None:
            console.print(f"[yellow]⚠️ 源文档不存在: {document_path}[/yellow]")
        statuses = await TranslationRecordStore(store).get_status(
            document_path, config.languages
        )

    table = Table(title=f"翻译状态: {document_path}")
    table.add_column("语言", style="cyan")
    table.add_column("状态")
    for locale, status in statuses.items():
        style = _STATUS_STYLES.get(status, "default")
        table.add_row(locale, f"[{style}]{status}[/{style}]")
    console.print(table)


@app.command("status")
def status(
    ctx: typer.Context,
    collection: Annotated[str, typer.Argument(help="源文档所在的集合路径。")],
    document_id: Annotated[str, typer.Argument(help="源文档 ID。")],
    config_path: ConfigOption = None,
) -> None:
    """显示一个文档在每种目标语言下的翻译状态。"""
    state: State = ctx.obj
    config = _load_config_or_exit(state, config_path)
    asyncio.run(_show_status(state, config, collection, document_id))


async def _translate(
    state: State,
    config: MelakaConfig,
    collection_config: CollectionConfig,
    collection: str,
    document_id: Optional[str],
    languages: list[str],
    dry_run: bool,
) -> None:
    settings = state.settings
    async with open_document_store(settings) as store:
        if document_id is not None:
            document_ids = [document_id]
        else:
            snapshots = await store.list_documents(
                collection, group=collection_config.is_collection_group
            )
            document_ids = [snapshot.id for snapshot in snapshots]

        if dry_run:
            console.print(
                Panel(
                    f"集合: {collection}\n"
                    f"文档数: {len(document_ids)}\n"
                    f"语言: {', '.join(languages)}\n"
                    f"任务数: {len(document_ids) * len(languages)}",
                    title="[yellow]演练模式：不会写入任何数据[/yellow]",
                    expand=False,
                )
            )
            return

        context = TaskHandlerContext(store=store, config=config, settings=settings)
        effective = resolve_effective_config(config, collection_config)
        queue = LocalTaskQueue.from_settings(
            lambda payload: execute_translation_task(payload, context),
            settings,
            max_concurrency=effective.max_concurrency,
        )
        stagger = settings.queue.stagger_delay_ms
        if document_id is not None:
            result: EnqueueResult = await enqueue_document_translation(
                queue,
                collection,
                document_id,
                languages,
                collection_config,
                stagger_delay_ms=stagger,
            )
        else:
            result = await enqueue_collection_translation(
                queue,
                store,
                collection_config,
                languages,
                stagger_delay_ms=stagger,
            )
        await queue.run_until_idle()

    console.print(
        f"批次 [bold]{result.batch_id}[/bold]: 投递 {result.tasks_enqueued}，"
        f"投递失败 {result.failed}，完成 {queue.completed}，"
        f"放弃 {len(queue.dead_letters)}"
    )
    for letter in queue.dead_letters:
        console.print(
            f"[red]✗ {letter.payload.get('documentId')}/"
            f"{letter.payload.get('targetLanguage')}: {letter.error}[/red]"
        )
    if queue.dead_letters or result.failed:
        raise typer.Exit(code=1)


@app.command("translate")
def translate(
    ctx: typer.Context,
    collection: Annotated[str, typer.Argument(help="要翻译的集合路径。")],
    document_id: Annotated[
        Optional[str], typer.Option("--doc", "-d", help="只翻译这一个文档。")
    ] = None,
    languages: Annotated[
        Optional[list[str]],
        typer.Option("--language", "-l", help="目标语言，可重复；默认取配置中的全部语言。"),
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", help="即使源内容未变化也重新翻译。")
    ] = False,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="只显示执行计划，不做任何写入。")
    ] = False,
    config_path: ConfigOption = None,
) -> None:
    """在本地通过进程内任务队列翻译一个集合或单个文档。"""
    state: State = ctx.obj
    config = _load_config_or_exit(state, config_path)
    collection_config = _find_collection_or_exit(config, collection)

    target_languages = languages or config.languages
    try:
        validate_lang_codes(target_languages)
    except ValueError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(code=1) from e

    if force:
        forced = collection_config.model_copy(update={"force_update": True})
        config = config.model_copy(
            update={
                "collections": [
                    forced if c.path == collection_config.path else c
                    for c in config.collections
                ]
            }
        )
        collection_config = forced

    asyncio.run(
        _translate(
            state,
            config,
            collection_config,
            collection,
            document_id,
            target_languages,
            dry_run,
        )
    )


async def _cleanup(state: State, document_path: str) -> int:
    async with open_document_store(state.settings) as store:
        return await TranslationRecordStore(store).delete_all(document_path)


@app.command("cleanup")
def cleanup(
    ctx: typer.Context,
    collection: Annotated[str, typer.Argument(help="源文档所在的集合路径。")],
    document_id: Annotated[str, typer.Argument(help="源文档 ID。")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="跳过确认。")] = False,
) -> None:
    """删除一个文档的全部翻译记录。"""
    state: State = ctx.obj
    document_path = f"{collection.strip('/')}/{document_id}"
    if not yes:
        typer.confirm(f"确定要删除 {document_path} 的全部翻译记录吗？", abort=True)
    deleted = asyncio.run(_cleanup(state, document_path))
    console.print(f"[green]✅ 已删除 {deleted} 条翻译记录。[/green]")


if __name__ == "__main__":
    app()
