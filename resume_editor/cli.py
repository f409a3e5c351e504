"""CLI - developer driver for the resume editor (in-memory mode)."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from .config import EditorConfig, load_editor_config
from .domain.scoring import format_score_report
from .errors import EditorError
from .observability import drain_telemetry, setup_logging
from .orchestrator import AgentResult, RunOrchestrator
from .providers import LLMCompletion

console = Console()


def print_banner():
    """Print welcome banner."""
    banner = """
╔═══════════════════════════════════════════════════════════╗
║                    📄 Resume Editor                       ║
║          Command-driven resume editing and scoring        ║
╠═══════════════════════════════════════════════════════════╣
║  Commands:                                                ║
║    /help       - Show this help message                   ║
║    /score      - Score the current resume                 ║
║    /undo       - Undo the last change                     ║
║    /redo       - Redo the last undone change              ║
║    /timeline   - Show edit history                        ║
║    /save PATH  - Write the current resume as JSON         ║
║    /quit       - Exit                                     ║
╚═══════════════════════════════════════════════════════════╝
"""
    console.print(banner, style="cyan")


def print_help():
    """Print help message."""
    help_text = """
## Available Commands

| Command | Description |
|---------|-------------|
| `/help` | Show this help message |
| `/score` | Score the current resume against the job |
| `/undo` / `/redo` | Move through edit history |
| `/timeline` | Show past/current/future history entries |
| `/save <path>` | Save the current resume JSON |
| `/quit` or `/exit` | Exit |

## Example Commands

- "add Docker, Kubernetes to skills"
- "strengthen experience[0].achievements[1]"
- "make the header navy; change the font to Georgia"
- "apply tips 1 and 3"
"""
    console.print(Markdown(help_text))


def load_resume(path: str) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Resume file must contain a JSON object: {path}")
    return data


def render_result(result: AgentResult) -> None:
    for clarification in result.clarifications:
        console.print(f"❓ {clarification.prompt}", style="yellow")

    for action in result.actions:
        status = "✅" if action.success else ("⏭️" if action.skipped else "❌")
        console.print(f"{status} {action.tool}: {action.rationale}")
        for warning in action.warnings:
            console.print(f"   ⚠️ {warning}", style="yellow")

    if result.diffs:
        table = Table(title="Changes")
        table.add_column("Type")
        table.add_column("Path")
        table.add_column("Value", overflow="fold")
        for entry in result.diffs:
            style = "green" if entry.type == "added" else "red"
            table.add_row(entry.type, entry.path, json.dumps(entry.value, ensure_ascii=False), style=style)
        console.print(table)

    if result.ats_before and result.ats_after:
        console.print(
            f"ATS score: {result.ats_before.score} → {result.ats_after.score} ({result.score_delta:+d})",
            style="bold",
        )

    for error in result.nonfatal_errors:
        console.print(f"⚠️ {error.code}: {error.message}", style="yellow")
    for error in result.fatal_errors:
        console.print(f"❌ {error.code}: {error.message}", style="red")


class EditorSession:
    """Holds the current document for the interactive loop."""

    def __init__(self, orchestrator: RunOrchestrator, document: Dict[str, Any], job_text: str, user_id: str):
        self.orchestrator = orchestrator
        self.document = document
        self.job_text = job_text
        self.user_id = user_id

    async def run(self, command: str) -> AgentResult:
        result = await self.orchestrator.run(self.user_id, command, self.document, self.job_text)
        if not result.fatal:
            self.document = result.document
        return result

    async def move(self, direction: str) -> None:
        try:
            restored = await (self.orchestrator.undo if direction == "undo" else self.orchestrator.redo)(self.user_id)
        except EditorError as e:
            console.print(f"⚠️ {e.message}", style="yellow")
            return
        if restored.document is not None:
            self.document = restored.document
        console.print(f"↩️ {direction} → history entry {restored.entry.id} (score {restored.entry.ats_score})", style="green")


async def handle_command(command: str, session: EditorSession) -> bool:
    """Handle special commands. Returns True if should continue, False to exit."""
    parts = command.strip().split(maxsplit=1)
    cmd = parts[0].lower()

    if cmd in ["/quit", "/exit", "/q"]:
        console.print("\n👋 Goodbye!", style="yellow")
        return False

    elif cmd == "/help":
        print_help()

    elif cmd == "/score":
        report = session.orchestrator.score(session.document, session.job_text)
        console.print(Markdown(format_score_report(report)))

    elif cmd in ["/undo", "/redo"]:
        await session.move(cmd[1:])

    elif cmd == "/timeline":
        timeline = await session.orchestrator.timeline(session.user_id)
        table = Table(title="History")
        table.add_column("Entry")
        table.add_column("Version")
        table.add_column("Score")
        for entry in timeline["entries"]:
            marker = " ◀" if entry["id"] == timeline["current"] else ""
            table.add_row(entry["id"] + marker, entry["version_id"], str(entry["ats_score"]))
        console.print(table)

    elif cmd == "/save":
        if len(parts) < 2:
            console.print("Usage: /save <path>", style="red")
        else:
            Path(parts[1]).write_text(json.dumps(session.document, indent=2, ensure_ascii=False), encoding="utf-8")
            console.print(f"💾 Saved to {parts[1]}", style="green")

    else:
        console.print(f"Unknown command: {command}. Type /help for available commands.", style="red")

    return True


async def run_interactive(session: EditorSession):
    """Run interactive editing loop."""
    history_file = Path.home() / ".resume_editor_history"
    prompt_session = PromptSession(history=FileHistory(str(history_file)))

    print_banner()

    while True:
        try:
            user_input = await prompt_session.prompt_async("\n📝 Edit: ")
            user_input = user_input.strip()

            if not user_input:
                continue

            if user_input.startswith("/"):
                should_continue = await handle_command(user_input, session)
                if not should_continue:
                    break
                continue

            try:
                render_result(await session.run(user_input))
            except EditorError as e:
                console.print(f"\n❌ {e.code}: {e.message}", style="red")

        except KeyboardInterrupt:
            console.print("\n\n👋 Goodbye!", style="yellow")
            break
        except EOFError:
            console.print("\n👋 Goodbye!", style="yellow")
            break

    await drain_telemetry()


def build_orchestrator(config_path: str) -> RunOrchestrator:
    try:
        config = load_editor_config(config_path)
    except FileNotFoundError:
        console.print(f"⚠️ Config file not found: {config_path}; using defaults without an LLM.", style="yellow")
        config = EditorConfig()

    completion: Optional[LLMCompletion] = None
    if config.llm is not None:
        try:
            completion = LLMCompletion.from_config(config.llm)
        except ValueError as e:
            console.print(f"⚠️ {e}", style="yellow")
            console.print("Continuing without an LLM; ambiguous commands will ask for clarification.", style="dim")
    return RunOrchestrator.in_memory(config=config, completion=completion)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Resume Editor - command-driven resume editing with ATS scoring"
    )
    parser.add_argument("resume", help="Path to a resume JSON file")
    parser.add_argument(
        "action",
        nargs="?",
        choices=["chat", "score", "run"],
        default="chat",
        help="chat (interactive, default), score, or run a single command",
    )
    parser.add_argument("--command", "-c", help="Command for the 'run' action")
    parser.add_argument("--job", "-j", help="Path to a job description text file")
    parser.add_argument(
        "--config",
        default="config/config.local.yaml",
        help="Path to configuration file",
    )
    parser.add_argument("--user", default="local", help="User id for history bookkeeping")
    parser.add_argument("--output", "-o", help="Write the edited resume JSON here (run only)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    args = parser.parse_args()
    setup_logging(args.verbose)

    try:
        document = load_resume(args.resume)
        job_text = Path(args.job).read_text(encoding="utf-8") if args.job else ""
    except (OSError, ValueError) as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)

    orchestrator = build_orchestrator(args.config)

    if args.action == "score":
        report = orchestrator.score(document, job_text)
        console.print(Markdown(format_score_report(report)))
        return

    if args.action == "run":
        if not args.command:
            parser.error("run requires --command")

        async def run_once() -> AgentResult:
            result = await orchestrator.run(args.user, args.command, document, job_text)
            await drain_telemetry()
            return result

        result = asyncio.run(run_once())
        render_result(result)
        if args.output and not result.fatal:
            Path(args.output).write_text(json.dumps(result.document, indent=2, ensure_ascii=False), encoding="utf-8")
            console.print(Panel(f"Saved edited resume to {args.output}", style="green"))
        sys.exit(1 if result.fatal else 0)

    asyncio.run(run_interactive(EditorSession(orchestrator, document, job_text, args.user)))


if __name__ == "__main__":
    main()
