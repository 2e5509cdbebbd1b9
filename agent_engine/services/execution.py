"""
Execution engine.

Runs an agent against a prompt as a bounded loop of rounds. Each round
asks the provider for the next assistant turn; tool calls in that turn are
dispatched and their results appended to the transcript before the next
round. The run ends with a final answer, a provider failure, or an
exhausted round budget.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
)

from agent_engine.adapters.common import parse_tool_arguments
from agent_engine.domains.agent import Agent
from agent_engine.domains.execution import (
    ConversationTurn,
    ExecutionError,
    ExecutionEvent,
    ExecutionRecord,
    ExecutionStatus,
    ProviderReply,
    ToolCallRequest,
    ToolInvocationResult,
    UsageInfo,
)
from agent_engine.domains.tools import ToolDescriptor
from agent_engine.exceptions import (
    AgentEngineError,
    ProviderError,
    ProviderUnavailable,
)
from agent_engine.interfaces.providers.llm import LLMProvider
from agent_engine.services.providers import ProviderRegistry
from agent_engine.services.tool_resolver import ToolResolver

logger = logging.getLogger(__name__)

EventSink = Callable[[ExecutionEvent], None]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class _RunState:
    """Mutable state of one run. Never shared outside the engine."""

    def __init__(
        self,
        agent: Agent,
        prompt: str,
        system_prompt: str,
        tools: List[ToolDescriptor],
    ):
        self.execution_id = f"exec_{uuid.uuid4().hex[:12]}"
        self.agent = agent
        self.prompt = prompt
        self.system_prompt = system_prompt
        self.tools = tools
        self.granted: Dict[str, ToolDescriptor] = {tool.name: tool for tool in tools}
        self.turns: List[ConversationTurn] = [ConversationTurn.user(prompt)]
        self.tool_calls: List[ToolCallRequest] = []
        self.tool_results: List[ToolInvocationResult] = []
        self.rounds = 0
        self.max_rounds = agent.config.max_tool_rounds
        self.status = ExecutionStatus.RUNNING
        self.started_at = _utcnow()
        self.ended_at: Optional[datetime] = None
        self.final_answer: Optional[str] = None
        self.usage: Optional[UsageInfo] = None
        self.error: Optional[ExecutionError] = None

    def add_usage(self, usage: Optional[UsageInfo]) -> None:
        if usage is None:
            return
        self.usage = usage if self.usage is None else self.usage + usage

    def fail(self, error: Exception) -> ExecutionStatus:
        self.error = ExecutionError.from_exception(error)
        return ExecutionStatus.FAILED

    def to_record(self) -> ExecutionRecord:
        return ExecutionRecord(
            execution_id=self.execution_id,
            agent_id=self.agent.id,
            prompt=self.prompt,
            system_prompt=self.system_prompt,
            turns=list(self.turns),
            tool_calls=list(self.tool_calls),
            tool_results=list(self.tool_results),
            rounds=self.rounds,
            max_rounds=self.max_rounds,
            status=self.status,
            started_at=self.started_at,
            ended_at=self.ended_at,
            final_answer=self.final_answer,
            usage=self.usage,
            error=self.error,
        )


class ExecutionEngine:
    """Drives the provider/tool loop for a single agent run."""

    def __init__(
        self,
        provider_registry: ProviderRegistry,
        tool_resolver: ToolResolver,
        parallel_tool_calls: bool = True,
        use_streaming: bool = False,
    ):
        self.provider_registry = provider_registry
        self.tool_resolver = tool_resolver
        self.parallel_tool_calls = parallel_tool_calls
        self.use_streaming = use_streaming

    async def execute(
        self, agent: Agent, prompt: str, emit: Optional[EventSink] = None
    ) -> ExecutionRecord:
        """Run the agent to a terminal status.

        Args:
            agent: Agent to run
            prompt: User prompt
            emit: Optional sink for lifecycle events

        Returns:
            The finished ExecutionRecord

        Raises:
            ToolNotFound: A declared tool resolves nowhere
            ServerUnavailable: A declared remote tool's server is not connected
        """
        tools = self.tool_resolver.resolve_all(agent.config.tools)
        state = _RunState(agent, prompt, agent.build_system_prompt(tools), tools)
        emit = emit or (lambda event: None)
        logger.info(
            f"Starting execution {state.execution_id} for agent {agent.id} "
            f"with {len(tools)} tools"
        )

        try:
            provider = self.provider_registry.get(agent.config.provider)
        except ProviderUnavailable as e:
            logger.error(f"Provider unavailable for agent {agent.id}: {e}")
            state.status = state.fail(e)
        else:
            while state.rounds < state.max_rounds:
                state.status = await self._run_round(state, provider, emit)
                if state.status.is_terminal:
                    break
            if state.status == ExecutionStatus.RUNNING:
                logger.warning(
                    f"Execution {state.execution_id} reached max rounds ({state.max_rounds})"
                )
                state.status = ExecutionStatus.MAX_ROUNDS_REACHED

        state.ended_at = _utcnow()
        logger.info(
            f"Execution {state.execution_id} finished with status "
            f"{state.status.value} after {state.rounds} rounds"
        )
        return state.to_record()

    def execute_stream(self, agent: Agent, prompt: str) -> "ExecutionStream":
        """Start a run in a background task and stream its lifecycle events."""
        return ExecutionStream(lambda emit: self.execute(agent, prompt, emit=emit))

    async def _run_round(
        self, state: _RunState, provider: LLMProvider, emit: EventSink
    ) -> ExecutionStatus:
        """Advance the run by one round and return the next status."""
        state.rounds += 1
        emit(
            ExecutionEvent(
                type="progress",
                execution_id=state.execution_id,
                round=state.rounds,
                message=f"Round {state.rounds}/{state.max_rounds}",
            )
        )

        try:
            reply = await self._request_reply(state, provider, emit)
        except (ProviderUnavailable, ProviderError) as e:
            logger.error(f"Provider call failed in round {state.rounds}: {e}")
            return state.fail(e)
        except AgentEngineError as e:
            logger.error(f"Provider call failed in round {state.rounds}: {e}")
            return state.fail(ProviderError(e.message, e))
        except Exception as e:
            logger.exception(f"Unexpected provider failure in round {state.rounds}: {e}")
            return state.fail(ProviderError(str(e), e))

        state.add_usage(reply.usage)
        state.turns.append(reply.turn)

        if not reply.turn.has_tool_calls:
            state.final_answer = reply.turn.content
            return ExecutionStatus.COMPLETED

        calls = list(reply.turn.tool_calls)
        state.tool_calls.extend(calls)
        for call in calls:
            emit(
                ExecutionEvent(
                    type="tool_call",
                    execution_id=state.execution_id,
                    round=state.rounds,
                    tool_name=call.name,
                    arguments=call.arguments,
                )
            )

        results = await self._dispatch_tools(state, calls)
        for call, result in zip(calls, results):
            state.tool_results.append(result)
            state.turns.append(
                ConversationTurn.tool(
                    call.id, call.name, json.dumps(result.payload(), default=str)
                )
            )
            emit(
                ExecutionEvent(
                    type="tool_result",
                    execution_id=state.execution_id,
                    round=state.rounds,
                    tool_name=call.name,
                    result=result.payload(),
                )
            )

        return ExecutionStatus.RUNNING

    async def _dispatch_tools(
        self, state: _RunState, calls: List[ToolCallRequest]
    ) -> List[ToolInvocationResult]:
        """Run the calls; results come back in request order."""
        if self.parallel_tool_calls and len(calls) > 1:
            return list(
                await asyncio.gather(
                    *(self.tool_resolver.dispatch(call, state.granted) for call in calls)
                )
            )
        return [await self.tool_resolver.dispatch(call, state.granted) for call in calls]

    async def _request_reply(
        self, state: _RunState, provider: LLMProvider, emit: EventSink
    ) -> ProviderReply:
        config = state.agent.config
        kwargs = dict(
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            tools=state.tools or None,
        )
        if not self.use_streaming:
            return await provider.complete(state.system_prompt, list(state.turns), **kwargs)

        stream = provider.complete_stream(state.system_prompt, list(state.turns), **kwargs)
        return await self._collect_stream(state, stream, emit)

    async def _collect_stream(
        self, state: _RunState, stream: Any, emit: EventSink
    ) -> ProviderReply:
        """Aggregate streamed content and tool call deltas into one reply."""
        content: List[str] = []
        partial_calls: Dict[int, Dict[str, Any]] = {}
        usage: Optional[UsageInfo] = None
        finish_reason: Optional[str] = None

        async for event in stream:
            event_type = event.get("type")
            if event_type == "content":
                delta = event.get("delta", "")
                content.append(delta)
                emit(
                    ExecutionEvent(
                        type="delta",
                        execution_id=state.execution_id,
                        round=state.rounds,
                        message=delta,
                    )
                )
            elif event_type == "tool_call_delta":
                partial = partial_calls.setdefault(
                    event.get("index", 0), {"id": None, "name": None, "arguments": ""}
                )
                if event.get("id") and not partial["id"]:
                    partial["id"] = event["id"]
                if event.get("name") and not partial["name"]:
                    partial["name"] = event["name"]
                partial["arguments"] += event.get("arguments_delta") or ""
            elif event_type == "usage":
                usage = UsageInfo(
                    prompt_tokens=event.get("prompt_tokens", 0),
                    completion_tokens=event.get("completion_tokens", 0),
                    total_tokens=event.get("total_tokens", 0),
                )
            elif event_type == "error":
                if event.get("kind") == ProviderUnavailable.__name__:
                    raise ProviderUnavailable(event.get("error", "Provider unavailable"))
                raise ProviderError(event.get("error", "Provider stream failed"))
            elif event_type == "message_end":
                finish_reason = event.get("finish_reason")
                break

        tool_calls = [
            ToolCallRequest(
                id=partial["id"] or f"call_{index}",
                name=partial["name"] or "",
                arguments=parse_tool_arguments(partial["arguments"]),
            )
            for index, partial in sorted(partial_calls.items())
        ]
        return ProviderReply(
            turn=ConversationTurn.assistant("".join(content), tool_calls),
            usage=usage,
            model=state.agent.config.model,
            finish_reason=finish_reason,
        )


class ExecutionStream:
    """Async iterator over the lifecycle events of a background run.

    The sequence ends with a ``complete`` event carrying the record, or an
    ``error`` event (failed run, resolution error, or cancellation). Once
    exhausted it stays exhausted.

    Usage:
        stream = engine.execute_stream(agent, "What is 2+2?")
        async for event in stream:
            print(event.type, event.message)
        record = await stream.result()
    """

    def __init__(
        self, runner: Callable[[EventSink], Awaitable[ExecutionRecord]]
    ):
        self._queue: "asyncio.Queue[ExecutionEvent]" = asyncio.Queue()
        self._finished = False
        self._task = asyncio.create_task(runner(self._queue.put_nowait))
        self._task.add_done_callback(self._on_done)

    def _on_done(self, task: "asyncio.Task[ExecutionRecord]") -> None:
        if task.cancelled():
            event = ExecutionEvent(type="error", message="Execution cancelled")
        elif task.exception() is not None:
            event = ExecutionEvent(type="error", message=str(task.exception()))
        else:
            record = task.result()
            if record.status == ExecutionStatus.FAILED:
                event = ExecutionEvent(
                    type="error",
                    execution_id=record.execution_id,
                    message=record.error.message if record.error else "Execution failed",
                    record=record,
                )
            else:
                event = ExecutionEvent(
                    type="complete",
                    execution_id=record.execution_id,
                    round=record.rounds,
                    message=record.response,
                    record=record,
                )
        self._queue.put_nowait(event)

    def __aiter__(self) -> "ExecutionStream":
        return self

    async def __anext__(self) -> ExecutionEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event.is_terminal:
            self._finished = True
        return event

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        """Cancel the run. In-flight provider and tool calls are abandoned."""
        return self._task.cancel()

    async def result(self) -> ExecutionRecord:
        """Wait for the record. Raises what the run raised, or CancelledError."""
        return await self._task
