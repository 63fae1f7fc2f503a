"""
Command line interface for the agent core.

Module: woolcoat/cli.py
"""

import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import anyio
import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from woolcoat import __version__
from woolcoat.agent import AgentCore, AgentError, Task, TaskSubmissionError, create_agent_core
from woolcoat.config import AgentSettings
from woolcoat.memory import UserMemory
from woolcoat.rag import DocumentInfo

console = Console()

T = TypeVar("T")

CoreFactory = Callable[[AgentSettings], Awaitable[AgentCore]]


def _run_with_core(ctx: click.Context, action: Callable[[AgentCore], Awaitable[T]]) -> T:
    """Build the core, run one action against it, and close it."""
    settings: AgentSettings = ctx.obj["settings"]
    factory: CoreFactory = ctx.obj.get("core_factory") or create_agent_core

    async def runner() -> T:
        core = await factory(settings)
        try:
            return await action(core)
        finally:
            await core.aclose()

    try:
        return anyio.run(runner)
    except AgentError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(e.message)}")
        if isinstance(e, TaskSubmissionError) and e.task is not None:
            _print_task(e.task)
        sys.exit(1)


def _print_task(task: Task) -> None:
    table = Table(title=f"Task {task.task_id}", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Tool", style="cyan")
    table.add_column("Status")
    for step in task.steps or []:
        if step.success:
            state = "[green]done[/green]"
        elif step.error:
            state = f"[red]failed: {escape(step.error)}[/red]"
        else:
            state = "[dim]not run[/dim]"
        table.add_row(str(step.step_index), step.step_desc, step.tool_code or "", state)
    console.print(table)


@click.group()
@click.option("--log-level", default=None, help="Override the configured log level")
@click.version_option(__version__, prog_name="woolcoat")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """Woolcoat agent core: tool calling, self-correction and task planning."""
    ctx.ensure_object(dict)
    load_dotenv(Path.cwd() / ".env", override=False)

    overrides: Dict[str, Any] = {"log_level": log_level} if log_level else {}
    settings = ctx.obj.get("settings") or AgentSettings(**overrides)
    ctx.obj["settings"] = settings

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command("tools")
@click.pass_context
def tools_cmd(ctx: click.Context) -> None:
    """List registered tools."""

    async def action(core: AgentCore) -> None:
        table = Table(title="Registered Tools", show_header=True, header_style="bold magenta")
        table.add_column("Code", style="cyan")
        table.add_column("Name")
        table.add_column("Category")
        table.add_column("Parameters")
        for descriptor in core.list_tools():
            params = ", ".join(
                f"{p.code}{'*' if p.required else ''}" for p in descriptor.params
            )
            table.add_row(descriptor.code, descriptor.name, descriptor.category.value, params)
        console.print(table)

    _run_with_core(ctx, action)


@cli.command("invoke")
@click.argument("instruction")
@click.option("--session-id", default=None, help="Correlation id")
@click.pass_context
def invoke_cmd(ctx: click.Context, instruction: str, session_id: Optional[str]) -> None:
    """Pick and run one tool for INSTRUCTION."""

    async def action(core: AgentCore) -> str:
        return await core.invoke(instruction, session_id)

    result = _run_with_core(ctx, action)
    console.print(Panel(Text(result), title="Tool call", border_style="green"))


@cli.command("execute")
@click.argument("tool_code")
@click.option(
    "--param", "params", multiple=True, metavar="KEY=VALUE", help="Tool parameter (repeatable)"
)
@click.option("--query", default="", help="Original instruction, used for self-correction")
@click.pass_context
def execute_cmd(ctx: click.Context, tool_code: str, params: tuple, query: str) -> None:
    """Run TOOL_CODE directly with the given parameters."""
    param_map: Dict[str, Any] = {}
    for item in params:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--param")
        param_map[key.strip()] = value

    async def action(core: AgentCore) -> str:
        return await core.invoke_known(tool_code, param_map, query)

    result = _run_with_core(ctx, action)
    console.print(Panel(Text(result), title=tool_code, border_style="green"))


@cli.command("task")
@click.argument("instruction")
@click.option("--session-id", default=None, help="Session to record the summary under")
@click.option("--user-id", default=None, help="Requesting user")
@click.pass_context
def task_cmd(
    ctx: click.Context, instruction: str, session_id: Optional[str], user_id: Optional[str]
) -> None:
    """Plan and run a multi-step INSTRUCTION."""

    async def action(core: AgentCore) -> Task:
        return await core.submit_task(instruction, session_id, user_id)

    task = _run_with_core(ctx, action)
    _print_task(task)
    console.print(Panel(Text(task.final_result or ""), title="Result", border_style="green"))


@cli.command("chat")
@click.argument("question")
@click.option("--session-id", default=None, help="Conversation id")
@click.option("--user-id", default=None, help="User whose long-term memory shapes the reply")
@click.pass_context
def chat_cmd(
    ctx: click.Context, question: str, session_id: Optional[str], user_id: Optional[str]
) -> None:
    """Ask QUESTION, streaming the answer."""

    async def action(core: AgentCore) -> str:
        result = await core.chat_stream(
            question,
            lambda chunk: console.print(chunk, end="", markup=False),
            session_id,
            user_id=user_id,
        )
        return result.session_id

    conversation_id = _run_with_core(ctx, action)
    console.print(f"\n[dim]Session: {conversation_id}[/dim]")


@cli.command("remember")
@click.argument("content")
@click.option("--user-id", default=None, help="Owner of the memory")
@click.option("--type", "memory_type", default="preference", show_default=True, help="Memory category")
@click.option("--weight", default=None, type=click.FloatRange(0.0, 1.0), help="Importance, 0.5 when omitted")
@click.pass_context
def remember_cmd(
    ctx: click.Context,
    content: str,
    user_id: Optional[str],
    memory_type: str,
    weight: Optional[float],
) -> None:
    """Store CONTENT as long-term memory for a user."""

    async def action(core: AgentCore) -> UserMemory:
        return await core.remember(user_id, content, memory_type, weight)

    memory = _run_with_core(ctx, action)
    console.print(
        f"[green]✓[/green] Saved {memory.memory_type} memory {memory.memory_id} "
        f"for {escape(memory.user_id)} (weight {memory.weight:.2f})"
    )


@cli.command("upload")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--user-id", default=None, help="Owner of the document")
@click.option("--doc-id", default=None, help="Document id (generated when omitted)")
@click.pass_context
def upload_cmd(
    ctx: click.Context, path: Path, user_id: Optional[str], doc_id: Optional[str]
) -> None:
    """Index the text file at PATH into the knowledge base."""

    async def action(core: AgentCore) -> DocumentInfo:
        return await core.upload_document(path.name, path.read_bytes(), user_id, doc_id)

    info = _run_with_core(ctx, action)
    console.print(
        f"[green]✓[/green] Indexed {escape(info.file_name or path.name)} as {escape(info.doc_id)} "
        f"({info.chunk_count} chunks)"
    )


@cli.command("serve")
@click.option("--host", default=None, help="Bind host")
@click.option("--port", default=None, type=int, help="Bind port")
@click.pass_context
def serve_cmd(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Run the HTTP API."""
    import uvicorn

    from woolcoat.api.main import create_app

    settings: AgentSettings = ctx.obj["settings"]
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    """Main entry point for woolcoat."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
