"""
Agent Loop — The core orchestrator.

Drives one bounded run: call the LLM, execute the tool calls it asks for,
validate the step, feed hints back, and stop when the model answers in plain
text or the step budget runs out.

Flow:
  seed messages → [planning] call LLM (token-limit → compact → retry once)
  → no tool calls: complete
  → tool calls: [executing_tools] run up to N → [validating] → hint if invalid → loop
  → steps exhausted: [max_steps_reached] one last call with no tools offered
"""

from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, TypeVar

from .context_manager import ContextManager, extract_token_limit
from .error_catalog import ErrorCode, classify_error
from .loop_detector import LoopDetector
from .models import (
    AgentConfig,
    AgentRun,
    AgentStatus,
    AgentStep,
    LLMResponse,
    Message,
    ToolCall,
    ToolDefinition,
    ToolResult,
)
from .providers.base import BaseLLMProvider
from .structured_logger import StructuredLogger
from .tool_registry import ToolRegistry
from .validator import validate_step_results

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_STEPS_INSTRUCTION = (
    "You have reached the maximum number of steps. Please provide your best "
    "answer based on the data gathered so far."
)


class RunCancelledError(Exception):
    """The caller's cancel event was set while the run was in flight."""

    def __init__(self, run_id: str):
        super().__init__(f"Agent run {run_id} was cancelled")
        self.run_id = run_id


def build_system_prompt(config: AgentConfig, registry: ToolRegistry) -> str:
    """Persona text followed by the live tool list. Rendered fresh on every run."""
    sections = []
    for t in registry.get_tool_definitions():
        params = "\n".join(
            f"  - {p.name} ({p.type}, {'required' if p.required else 'optional'}): {p.description}"
            for p in t.parameters
        )
        sections.append(f"### {t.name}\n{t.description}\nParameters:\n{params or '  (none)'}")
    return f"{config.system_prompt}\n\n## Available Tools\n\n" + "\n\n".join(sections)


@dataclass
class _RunState:
    """Everything that belongs to one in-flight run and nothing else."""
    run: AgentRun
    log: StructuredLogger
    loop_detector: LoopDetector
    cancel_event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class Agent:
    """
    Runs queries against one provider and one tool registry.

    The agent itself holds no per-run state, so a single instance can serve
    concurrent runs; each run gets a fresh message list, loop detector and trace.
    """

    def __init__(
        self,
        provider: BaseLLMProvider,
        registry: ToolRegistry,
        config: Optional[AgentConfig] = None,
    ):
        self.provider = provider
        self.registry = registry
        self.config = config or AgentConfig()
        self.config.validate()
        self.context_mgr = ContextManager()
        logger.debug(f"Agent ready: {provider!r} with {len(registry)} tools")

    async def run(
        self,
        query: str,
        history: Optional[list[Message]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AgentRun:
        """
        Run the loop to a terminal status and return the trace.

        Tool failures never escape; they land in ToolResult.error. A provider
        failure that compaction cannot fix is re-raised unchanged after
        ``on_error`` has seen its classification.

        Raises:
            RunCancelledError: ``cancel_event`` was set mid-run
        """
        run = AgentRun(id=AgentRun.generate_id(), query=query)
        state = _RunState(
            run=run,
            log=StructuredLogger(__name__).with_context(
                run_id=run.id, provider_name=self.provider.provider_name,
            ),
            loop_detector=LoopDetector(),
            cancel_event=cancel_event,
        )
        started = time.perf_counter()

        messages = [
            Message(role="system", content=build_system_prompt(self.config, self.registry)),
            *(history or []),
            Message(role="user", content=query),
        ]
        state.log.info(
            f"Run started with {len(self.registry)} tools",
            max_steps=self.config.max_steps,
            history_messages=len(history or []),
        )

        try:
            await self._run_steps(state, messages)
        except RunCancelledError:
            run.total_duration_ms = (time.perf_counter() - started) * 1000
            state.log.info("Run cancelled", steps=len(run.steps))
            raise
        except Exception as e:
            run.total_duration_ms = (time.perf_counter() - started) * 1000
            state.log.error(f"Run failed: {e.__class__.__name__}", steps=len(run.steps))
            self._set_status(state, AgentStatus.ERROR)
            raise

        run.total_duration_ms = (time.perf_counter() - started) * 1000
        state.log.info(
            f"Run finished: {run.status.value}",
            steps=len(run.steps),
            duration_ms=round(run.total_duration_ms, 1),
        )
        return run

    async def _run_steps(self, state: _RunState, messages: list[Message]) -> None:
        run = state.run
        tool_defs = self.registry.get_tool_definitions()

        self._set_status(state, AgentStatus.PLANNING)

        for step_number in range(1, self.config.max_steps + 1):
            response, messages = await self.chat_with_recovery(state, messages, tool_defs)

            if not response.has_tool_calls:
                step = AgentStep(
                    step_number=step_number,
                    status=AgentStatus.COMPLETE,
                    response=response.content,
                )
                self._append_step(state, step)
                run.final_response = response.content
                self._set_status(state, AgentStatus.COMPLETE)
                return

            self._set_status(state, AgentStatus.EXECUTING_TOOLS)

            requested = response.tool_calls
            executed = requested[: self.config.max_tool_calls_per_step]
            if len(executed) < len(requested):
                state.log.info(
                    f"Dropping {len(requested) - len(executed)} tool calls over the per-step cap",
                    step=step_number,
                )

            # Only executed calls go back to the model, so every call id has a result
            messages.append(Message(
                role="assistant",
                content=response.content or "",
                tool_calls=executed,
            ))
            tool_results = await self.execute_tool_calls(state, executed)
            messages.append(Message(
                role="tool",
                content="\n".join(tr.to_text() for tr in tool_results),
                tool_results=tool_results,
            ))

            self._set_status(state, AgentStatus.VALIDATING)
            state.loop_detector.record_calls(requested)
            validation = validate_step_results(tool_results, state.loop_detector)

            step = AgentStep(
                step_number=step_number,
                status=AgentStatus.EXECUTING_TOOLS,
                tool_calls=requested,
                tool_results=tool_results,
                validation=validation,
                response=response.content or None,
            )
            self._append_step(state, step)

            if not validation.is_valid:
                state.log.info("Step needs refinement", step=step_number, issues=validation.issues)
                messages.append(Message(role="user", content="Note: " + " ".join(validation.issues)))

            self._set_status(state, AgentStatus.PLANNING)

        # Step budget exhausted: ask for a best-effort answer with no tools offered
        self._set_status(state, AgentStatus.MAX_STEPS_REACHED)
        messages.append(Message(role="user", content=MAX_STEPS_INSTRUCTION))

        response, messages = await self.chat_with_recovery(state, messages, [])
        step = AgentStep(
            step_number=len(run.steps) + 1,
            status=AgentStatus.MAX_STEPS_REACHED,
            response=response.content,
        )
        self._append_step(state, step)
        run.final_response = response.content

    # ── Provider call with token-limit recovery ──────────────────

    async def chat_with_recovery(
        self,
        state: _RunState,
        messages: list[Message],
        tool_defs: list[ToolDefinition],
    ) -> tuple[LLMResponse, list[Message]]:
        """
        Call the provider. On a token_limit failure, compact the history and
        retry exactly once; every other failure propagates unchanged.

        Returns the response and the message list the loop should continue
        with (the compacted one if compaction happened).
        """
        try:
            response = await self._guard(
                state, self.provider.chat(messages, tool_defs, self.config.temperature)
            )
            return response, messages
        except RunCancelledError:
            raise
        except Exception as e:
            agent_error = classify_error(e)
            state.log.warning(
                f"Provider call failed: {agent_error}",
                code=agent_error.code.value,
                recoverable=agent_error.is_recoverable,
            )
            self._emit(state, "on_error", agent_error)

            if agent_error.code is ErrorCode.TOKEN_LIMIT:
                self._emit(state, "on_status_change", AgentStatus.COMPACTING)
                budget = extract_token_limit(e)
                if budget is None:
                    budget = self.config.default_token_budget
                compacted = self.context_mgr.compact(messages, budget)

                if compacted is not None:
                    state.log.info(
                        "Retrying with compacted context",
                        budget=budget,
                        messages_before=len(messages),
                        messages_after=len(compacted),
                    )
                    self._emit(state, "on_compaction")
                    response = await self._guard(
                        state, self.provider.chat(compacted, tool_defs, self.config.temperature)
                    )
                    return response, compacted

            raise

    # ── Tool execution ───────────────────────────────────────────

    async def execute_tool_calls(self, state: _RunState, tool_calls: list[ToolCall]) -> list[ToolResult]:
        """Execute already-capped calls. Results keep call order whichever mode runs them."""
        if self.config.parallel_tool_calls and len(tool_calls) > 1:
            batch = self.registry.execute_parallel(tool_calls)
        else:
            batch = self.registry.execute_sequential(tool_calls)
        results = await self._guard(state, batch)

        for tr in results:
            if tr.error:
                state.log.debug(f"Tool '{tr.name}' error: {tr.error}", duration_ms=round(tr.duration_ms, 1))
            else:
                state.log.debug(f"Tool '{tr.name}' ok", duration_ms=round(tr.duration_ms, 1))
        return results

    # ── Cancellation ─────────────────────────────────────────────

    async def _guard(self, state: _RunState, aw: Awaitable[T]) -> T:
        """Await ``aw``, cancelling it and raising RunCancelledError if the cancel event fires first."""
        if state.cancel_event is None:
            return await aw
        if state.cancel_event.is_set():
            if asyncio.iscoroutine(aw):
                aw.close()
            raise RunCancelledError(state.run.id)

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(state.cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()
        await asyncio.gather(task, return_exceptions=True)
        raise RunCancelledError(state.run.id)

    # ── Callbacks ────────────────────────────────────────────────

    def _set_status(self, state: _RunState, status: AgentStatus) -> None:
        state.run.status = status
        self._emit(state, "on_status_change", status)

    def _append_step(self, state: _RunState, step: AgentStep) -> None:
        state.run.steps.append(step)
        self._emit(state, "on_step_update", step)

    def _emit(self, state: _RunState, hook: str, *args: Any) -> None:
        """Deliver an observation callback. Failures are logged, never propagated."""
        if state.cancelled:
            return
        callbacks = self.config.callbacks
        fn = getattr(callbacks, hook, None) if callbacks else None
        if fn is None:
            return
        try:
            fn(*args)
        except Exception as e:
            state.log.warning(f"Callback {hook} raised {e.__class__.__name__}: {e}")


async def run_agent(
    query: str,
    history: Optional[list[Message]],
    config: Optional[AgentConfig],
    llm_provider: BaseLLMProvider,
    tool_registry: ToolRegistry,
    *,
    cancel_event: Optional[asyncio.Event] = None,
) -> AgentRun:
    """Run one query to completion. ``config=None`` uses AgentConfig defaults."""
    agent = Agent(llm_provider, tool_registry, config)
    return await agent.run(query, history, cancel_event=cancel_event)
