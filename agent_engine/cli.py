from typing import List, Optional
import typer
import asyncio
import json
import logging
from typing_extensions import Annotated
from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner
from rich.prompt import Prompt
from rich.table import Table

from agent_engine.client.agent_engine import AgentEngine
from agent_engine.domains.execution import ExecutionRecord, ExecutionStatus
from agent_engine.exceptions import AgentEngineError, AgentNotFound
from agent_engine.repositories.remote_servers import RemoteServerConfigRepository

# --- Basic Logging Configuration ---
logging.basicConfig(level=logging.WARNING, format="%(levelname)s:%(name)s:%(message)s")
# --- End Logging Configuration ---

app = typer.Typer(help="Define agents and run them against prompts.")
console = Console()

ConfigOption = Annotated[
    str, typer.Option(help="Path to the configuration file (JSON or Python).")
]
AgentOption = Annotated[
    Optional[str],
    typer.Option(help="Id of a configured agent. Without it an ad-hoc agent is used."),
]
ProviderOption = Annotated[str, typer.Option(help="Provider of the ad-hoc agent.")]
ModelOption = Annotated[Optional[str], typer.Option(help="Model of the ad-hoc agent.")]
ToolsOption = Annotated[
    Optional[List[str]], typer.Option("--tool", help="Tool for the ad-hoc agent (repeatable).")
]
RoundsOption = Annotated[int, typer.Option(help="Round budget of the ad-hoc agent.")]


def load_engine(config: str) -> AgentEngine:
    """Build the engine, exiting with a readable message on failure."""
    try:
        with console.status("[bold green]Initializing agent engine...", spinner="dots"):
            return AgentEngine(config_path=config)
    except FileNotFoundError:
        console.print(
            f"[bold red]Error:[/bold red] Configuration file not found at '{config}'"
        )
        raise typer.Exit(code=1)
    except (ValueError, AgentEngineError) as e:
        console.print(f"[bold red]Error loading configuration:[/bold red] {e}")
        raise typer.Exit(code=1)


async def resolve_agent_id(
    engine: AgentEngine,
    agent: Optional[str],
    provider: str,
    model: Optional[str],
    tools: Optional[List[str]],
    max_rounds: int,
) -> str:
    if agent:
        if engine.get_agent(agent) is None:
            raise AgentNotFound(agent)
        return agent

    spec = {
        "name": "CLI Agent",
        "provider": provider,
        "tools": tools or [],
        "max_tool_rounds": max_rounds,
    }
    if model:
        spec["model"] = model
    return await engine.create_agent(spec)


async def run_with_progress(engine: AgentEngine, agent_id: str, prompt: str) -> ExecutionRecord:
    """Run an agent while showing its lifecycle events."""
    with Live(console=console, refresh_per_second=10, transient=True) as live:
        live.update(Spinner("dots", "Thinking..."))
        stream = await engine.run_stream(agent_id, prompt)
        async for event in stream:
            if event.type == "progress":
                live.update(Spinner("dots", event.message or "Thinking..."))
            elif event.type == "tool_call":
                console.print(f"[dim]-> {event.tool_name}({json.dumps(event.arguments)})[/dim]")
            elif event.type == "tool_result":
                console.print(f"[dim]<- {event.tool_name}: {json.dumps(event.result, default=str)}[/dim]")
        return await stream.result()


def print_record(record: ExecutionRecord) -> None:
    if record.status == ExecutionStatus.COMPLETED:
        console.print(f"[bright_blue]Agent:[/bright_blue] {record.response}")
    elif record.status == ExecutionStatus.MAX_ROUNDS_REACHED:
        console.print(
            f"[yellow]Stopped after {record.rounds} rounds without a final answer.[/yellow]"
        )
    else:
        message = record.error.message if record.error else "unknown error"
        console.print(f"[bold red]Execution failed:[/bold red] {message}")

    summary = f"{record.status.value}, {record.rounds}/{record.max_rounds} rounds"
    if record.usage:
        summary += f", {record.usage.total_tokens} tokens"
    console.print(f"[dim]{summary}[/dim]")


@app.command()
def run(
    prompt: Annotated[str, typer.Argument(help="Prompt to send to the agent.")],
    config: ConfigOption = "config.json",
    agent: AgentOption = None,
    provider: ProviderOption = "openai",
    model: ModelOption = None,
    tool: ToolsOption = None,
    max_rounds: RoundsOption = 10,
):
    """Run an agent once against a prompt."""
    engine = load_engine(config)

    async def main() -> Optional[ExecutionRecord]:
        async with engine:
            agent_id = await resolve_agent_id(engine, agent, provider, model, tool, max_rounds)
            return await run_with_progress(engine, agent_id, prompt)

    try:
        record = asyncio.run(main())
    except AgentEngineError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    print_record(record)
    if record.status == ExecutionStatus.FAILED:
        raise typer.Exit(code=1)


@app.command()
def chat(
    config: ConfigOption = "config.json",
    agent: AgentOption = None,
    provider: ProviderOption = "openai",
    model: ModelOption = None,
    tool: ToolsOption = None,
    max_rounds: RoundsOption = 10,
):
    """
    Start an interactive session; every message is an independent run.
    Type 'exit' or 'quit' to end the session.
    """
    engine = load_engine(config)

    async def session() -> None:
        async with engine:
            agent_id = await resolve_agent_id(engine, agent, provider, model, tool, max_rounds)
            console.print("[green]Agent ready. Start chatting![/green]")
            console.print("[dim]Type 'exit' or 'quit' to end.[/dim]")

            while True:
                user_message = await asyncio.to_thread(
                    Prompt.ask, "[bold green]You[/bold green]"
                )
                if user_message.lower() in ["exit", "quit"]:
                    console.print("[yellow]Exiting chat session.[/yellow]")
                    break
                if not user_message.strip():
                    continue

                try:
                    print_record(await run_with_progress(engine, agent_id, user_message))
                except AgentEngineError as e:
                    console.print(f"[bold red]Error:[/bold red] {e}")

    try:
        asyncio.run(session())
    except KeyboardInterrupt:
        console.print("\n[yellow]Exiting chat session (KeyboardInterrupt).[/yellow]")
    except AgentEngineError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command()
def agents(config: ConfigOption = "config.json"):
    """List the agents defined in the configuration."""
    engine = load_engine(config)

    async def main():
        async with engine:
            return engine.list_agents()

    table = Table(title="Agents")
    for column in ("ID", "Name", "Provider", "Model", "Tools"):
        table.add_column(column)
    for summary in asyncio.run(main()):
        table.add_row(
            summary.id, summary.name, summary.provider, summary.model, str(summary.tool_count)
        )
    console.print(table)


@app.command()
def tools(config: ConfigOption = "config.json"):
    """List local tools and tools advertised by remote servers."""
    engine = load_engine(config)

    async def main():
        async with engine:
            return engine.list_tools()

    table = Table(title="Tools")
    for column in ("Name", "Location", "Description"):
        table.add_column(column)
    for descriptor in asyncio.run(main()):
        location = "local" if descriptor.is_local else f"remote ({descriptor.target.server_name})"
        table.add_row(descriptor.name, location, descriptor.description)
    console.print(table)


@app.command()
def servers(config: ConfigOption = "config.json"):
    """Connect to the configured remote tool servers and show their status."""
    engine = load_engine(config)

    async def main():
        async with engine:
            return engine.list_servers()

    table = Table(title="Remote tool servers")
    for column in ("Name", "Transport", "State", "Tools", "Last error"):
        table.add_column(column)
    for status in asyncio.run(main()):
        table.add_row(
            status.name,
            status.transport.value,
            status.state.value,
            str(status.tool_count),
            status.last_error or "",
        )
    console.print(table)


@app.command("example-config")
def example_config(
    output: Annotated[
        Optional[str], typer.Option(help="Write the example to this file instead.")
    ] = None,
):
    """Print an example remote tool server configuration."""
    content = json.dumps(
        RemoteServerConfigRepository.create_example_config().to_dict(), indent=2
    )
    if output:
        with open(output, "w") as f:
            f.write(content)
        console.print(f"[green]Example configuration written to {output}[/green]")
    else:
        console.print_json(content)


if __name__ == "__main__":
    app()
