"""
Run the browser workflow against a live browser from the command line.

Example:
    python scripts/run_workflow.py "Find the top story on Hacker News" --start-url https://news.ycombinator.com
"""
import argparse
import asyncio
import os
from typing import Any, Dict

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from browser_runtime import AgentBrowser, BrowserToolExecutor, configure_logging
from browser_workflow import BrowserAutomationWorkflow, TaskUpdate, WorkflowInput, WorkflowSettings
from browser_workflow.evaluator import format_evaluation_summary
from browser_workflow.execution_loop import ExecutionEvent


console = Console()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plan, execute, evaluate and summarize a browser task.")
    parser.add_argument("query", help="Natural-language task")
    parser.add_argument("--start-url", default=None, help="Page to open before the run starts")
    parser.add_argument("--provider", default=None, help="google, gateway, openrouter or nim")
    parser.add_argument("--model", default=None, help="Model name for the chosen provider")
    parser.add_argument("--max-retries", type=int, default=None)
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--auto-approve", action="store_true", help="Approve sensitive actions without asking")
    parser.add_argument("--log-level", default=None)
    return parser.parse_args()


def print_task(update: TaskUpdate) -> None:
    colors = {"in_progress": "yellow", "completed": "green", "error": "red", "cancelled": "magenta"}
    color = colors.get(update.status.value, "dim")
    note = f" [dim]{update.description}[/dim]" if update.description else ""
    console.print(f"[{color}]●[/{color}] {update.task_id}: {update.status.value}{note}")


def print_event(event: ExecutionEvent) -> None:
    if event.type == "tool-result" and event.tool_execution is not None:
        execution = event.tool_execution
        status = "[green]ok[/green]" if execution.success else f"[red]{execution.error_text}[/red]"
        console.print(f"  [blue]{execution.tool_name}[/blue] {execution.input} -> {status}")
    elif event.type == "approval-requested" and event.tool_execution is not None:
        console.print(f"  [yellow]approval needed for {event.tool_execution.tool_name}[/yellow]")


async def main() -> None:
    args = parse_args()
    configure_logging(level=args.log_level)

    overrides: Dict[str, Any] = {}
    if args.max_retries is not None:
        overrides["max_retries"] = args.max_retries
    if args.provider:
        os.environ["WORKFLOW_PROVIDER"] = args.provider
    if args.model:
        os.environ["WORKFLOW_MODEL"] = args.model
    settings = WorkflowSettings.from_env(**overrides)

    async def approve(tool_name: str, params: Dict[str, Any]) -> bool:
        if args.auto_approve:
            return True
        return await asyncio.to_thread(Confirm.ask, f"Allow [bold]{tool_name}[/bold] with {params}?")

    async with AgentBrowser(headless=not args.headed, start_url=args.start_url) as browser:
        workflow = BrowserAutomationWorkflow(
            settings,
            BrowserToolExecutor(browser),
            approval_callback=approve,
        )
        output = await workflow.run(
            WorkflowInput(user_query=args.query, current_url=args.start_url),
            task_listener=print_task,
            on_event=print_event,
        )

    table = Table(title=f"Workflow {output.workflow_id}")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Quality", output.evaluation.quality.value)
    table.add_row("Retries", str(output.retry_count))
    table.add_row("Finish reason", output.streaming.finish_reason)
    table.add_row("Tool calls", str(len(output.streaming.tool_executions)))
    table.add_row("Duration", f"{output.duration:.1f}s")
    console.print(table)
    console.print(Panel(format_evaluation_summary(output.evaluation), title="Evaluation"))
    if output.error_analysis is not None:
        console.print(Panel(f"{output.error_analysis.recap}\n\n{output.error_analysis.blame}\n\n"
                            f"{output.error_analysis.improvement}", title="Error Analysis", border_style="red"))
    console.print(Panel(Markdown(output.summarization.summary or "(no summary)"), title="Summary"))


if __name__ == "__main__":
    asyncio.run(main())
