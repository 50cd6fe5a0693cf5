from typing import TypedDict, Annotated, List, Dict, Any, Optional, Callable, Awaitable
import asyncio
import operator
import time

from langchain_core.runnables import RunnableConfig
from langgraph.errors import GraphRecursionError
from langgraph.graph import StateGraph, END
import structlog

from one_agent.domain.context.context_manager import ContextWindowManager
from one_agent.domain.context.memory.runtime_memory import TranscriptStore
from one_agent.domain.context.prompt_builder import PromptBuilder
from one_agent.domain.context.state.state_manager import SessionRegistry
from one_agent.domain.inference.base_inference import CapabilitySpec, InferenceProvider
from one_agent.domain.models.agent_state import (
    Message, Role, Session, TurnRequest, TurnResult, TurnState, TURN_TRANSITIONS
)
from one_agent.domain.models.capability import CapabilityCall, CapabilityResult
from one_agent.domain.streaming.streaming_handler import StreamingHandler, TurnSink
from one_agent.domain.tool.tool_executor import CapabilityExecutor
from one_agent.domain.tool.tool_registry import CapabilityRegistry
from one_agent.infrastructure.observability.logging import agent_logger, metrics
from .content_policy import ContentPolicy, POLICY_VIOLATION_MESSAGE

logger = structlog.get_logger(__name__)

LOGIC_LOOP_MESSAGE = "Logic loop detected: too many capability calls in one turn."
EMPTY_INPUT_MESSAGE = "Empty message content"
TURN_TIMEOUT_MESSAGE = "The request took too long and was cancelled."
INTERNAL_ERROR_MESSAGE = "Internal error while processing the request."


class OrchestrationError(Exception):
    """Base class for agent loop failures"""


class PolicyViolationError(OrchestrationError):
    """Input rejected by the content gate"""


class LogicLoopError(OrchestrationError):
    """Too many capability round-trips in one turn"""


class InferenceError(OrchestrationError):
    """The model call failed"""


class IllegalTransitionError(OrchestrationError):
    """A node tried to move the turn along an edge not in the transition table"""


class TurnGraphState(TypedDict):
    """State for one turn of the agent loop.

    Annotated fields accumulate across nodes; all others are replaced by the
    latest node that writes them.
    """
    session_id: str
    user_input: str
    user_message: Optional[Message]
    history: List[Message]
    scratch: Annotated[List[Message], operator.add]
    phase: TurnState
    depth: int
    pending_calls: List[CapabilityCall]
    last_results: List[CapabilityResult]
    invoked: Annotated[List[str], operator.add]
    streamed: Annotated[List[str], operator.add]
    failure: Optional[OrchestrationError]


NodeFunction = Callable[[TurnGraphState, RunnableConfig], Awaitable[Dict[str, Any]]]


class AgentOrchestrator:
    """Drives inference and capability calls for one turn at a time per session.

    The loop is the state machine START -> INFER -> (DONE | AWAIT_CAPABILITY ->
    EXEC_CAPABILITY -> INFER) | ERROR, compiled into a langgraph graph whose
    edges come from TURN_TRANSITIONS.
    """

    def __init__(
        self,
        inference: InferenceProvider,
        registry: CapabilityRegistry,
        context_manager: ContextWindowManager,
        session_registry: SessionRegistry,
        streaming_handler: StreamingHandler,
        transcript_store: Optional[TranscriptStore] = None,
        content_policy: Optional[ContentPolicy] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        max_depth: int = 5,
        turn_timeout: Optional[float] = 120.0
    ):
        self.inference = inference
        self.registry = registry
        self.executor = CapabilityExecutor(registry)
        self.context_manager = context_manager
        self.session_registry = session_registry
        self.streaming_handler = streaming_handler
        self.transcript_store = transcript_store
        self.content_policy = content_policy or ContentPolicy()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.max_depth = max_depth
        self.turn_timeout = turn_timeout
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Compile the turn state machine"""

        workflow = StateGraph(TurnGraphState)

        nodes = {
            TurnState.START: self.start_node,
            TurnState.INFER: self.infer_node,
            TurnState.AWAIT_CAPABILITY: self.await_capability_node,
            TurnState.EXEC_CAPABILITY: self.exec_capability_node,
            TurnState.DONE: self.done_node,
            TurnState.ERROR: self.error_node,
        }
        for state, node in nodes.items():
            workflow.add_node(state.value, self._guarded(state, node))

        workflow.set_entry_point(TurnState.START.value)

        for source, targets in TURN_TRANSITIONS.items():
            if targets:
                workflow.add_conditional_edges(
                    source.value,
                    self._route,
                    {target.value: target.value for target in targets}
                )
            else:
                workflow.add_edge(source.value, END)

        return workflow.compile()

    def _guarded(self, source: TurnState, node: NodeFunction) -> NodeFunction:
        """Reject any transition the table does not allow"""

        async def guarded_node(state: TurnGraphState, config: RunnableConfig) -> Dict[str, Any]:
            update = await node(state, config)
            target = update.get("phase", source)
            if TURN_TRANSITIONS[source] and target not in TURN_TRANSITIONS[source]:
                raise IllegalTransitionError(f"{source.value} -> {target.value}")
            if target != source:
                agent_logger.log_state_transition(
                    session_id=state["session_id"],
                    from_state=source.value,
                    to_state=target.value,
                    depth=update.get("depth", state["depth"])
                )
            return update

        return guarded_node

    @staticmethod
    def _route(state: TurnGraphState) -> str:
        return state["phase"].value

    async def start_node(self, state: TurnGraphState, config: RunnableConfig) -> Dict[str, Any]:
        """Gate the input, then assemble the inference input"""

        session: Session = config["configurable"]["session"]
        text = state["user_input"] or ""

        if not text.strip():
            return {"phase": TurnState.ERROR, "failure": OrchestrationError(EMPTY_INPUT_MESSAGE)}

        # Runs before anything can reach the model, summarization included
        violation = self.content_policy.find_violation(text)
        if violation:
            logger.warning("Policy violation", session_id=session.id)
            metrics.increment_counter("turns.policy_rejected")
            return {"phase": TurnState.ERROR, "failure": PolicyViolationError(POLICY_VIOLATION_MESSAGE)}

        user_message = Message.user(self.content_policy.redact(text))

        await self.context_manager.compact(session, self.inference)

        system_prompt = self.prompt_builder.build_system_prompt(session, capabilities=self.registry.descriptors())
        history = self.context_manager.build_input(system_prompt, session, user_message)

        return {"phase": TurnState.INFER, "user_message": user_message, "history": history}

    async def infer_node(self, state: TurnGraphState, config: RunnableConfig) -> Dict[str, Any]:
        """Run inference, streaming content to the sink as it arrives"""

        sink: TurnSink = config["configurable"]["sink"]
        capabilities = self._offered_capabilities(state)

        parts: List[str] = []
        calls: List[CapabilityCall] = []
        try:
            async for chunk in self.inference.stream(state["history"] + state["scratch"], capabilities or None):
                if chunk.content:
                    parts.append(chunk.content)
                    await sink.emit_chunk(chunk.content)
                calls.extend(chunk.capability_calls)
        except Exception as e:
            logger.error("Inference failed", session_id=state["session_id"], error=str(e))
            return {"phase": TurnState.ERROR, "failure": InferenceError(f"Inference failed: {e}")}

        content = "".join(parts)
        streamed = [content] if content else []

        if calls:
            return {
                "phase": TurnState.AWAIT_CAPABILITY,
                "pending_calls": calls,
                "scratch": [Message.assistant(content, calls)],
                "streamed": streamed,
            }

        return {"phase": TurnState.DONE, "pending_calls": [], "streamed": streamed}

    def _offered_capabilities(self, state: TurnGraphState) -> List[CapabilitySpec]:
        """Capabilities the next inference call may request.

        All of them on the first call. Right after capability results none,
        which forces a natural-language answer, except the declared fallback
        of a capability that just returned a sentinel, if the fallback has not
        run yet this turn.
        """

        scratch = state["scratch"]
        if not scratch or scratch[-1].role != Role.TOOL:
            return self.registry.specs()

        fallbacks: List[str] = []
        for result in state["last_results"]:
            if result.sentinel is None:
                continue
            descriptor = self.registry.get(result.name)
            fallback = descriptor.fallback if descriptor else None
            if fallback and fallback in self.registry and fallback not in state["invoked"] and fallback not in fallbacks:
                fallbacks.append(fallback)

        return self.registry.specs(fallbacks) if fallbacks else []

    async def await_capability_node(self, state: TurnGraphState, config: RunnableConfig) -> Dict[str, Any]:
        """Enforce the recursion bound before running another round-trip"""

        if state["depth"] >= self.max_depth:
            logger.error(
                "Capability loop limit exceeded",
                session_id=state["session_id"],
                depth=state["depth"],
                requested=[call.name for call in state["pending_calls"]]
            )
            metrics.increment_counter("turns.loop_detected")
            return {"phase": TurnState.ERROR, "failure": LogicLoopError(LOGIC_LOOP_MESSAGE)}

        return {"phase": TurnState.EXEC_CAPABILITY}

    async def exec_capability_node(self, state: TurnGraphState, config: RunnableConfig) -> Dict[str, Any]:
        """Run the pending calls and feed one tool message per call back"""

        calls = state["pending_calls"]
        results = await self.executor.execute_all(calls, state["session_id"])

        return {
            "phase": TurnState.INFER,
            "depth": state["depth"] + 1,
            "scratch": [Message.tool(result.text, result.call_id) for result in results],
            "last_results": results,
            "invoked": [call.name for call in calls],
            "pending_calls": [],
        }

    async def done_node(self, state: TurnGraphState, config: RunnableConfig) -> Dict[str, Any]:
        """Commit the exchange to the session"""

        session: Session = config["configurable"]["session"]
        session.commit_turn(state["user_message"], Message.assistant("".join(state["streamed"])))
        return {"phase": TurnState.DONE}

    async def error_node(self, state: TurnGraphState, config: RunnableConfig) -> Dict[str, Any]:
        """Terminal failure; the session is left as it was"""

        failure = state.get("failure")
        logger.warning(
            "Turn failed",
            session_id=state["session_id"],
            kind=type(failure).__name__ if failure else None,
            error=str(failure) if failure else None
        )
        return {"phase": TurnState.ERROR}

    async def _load_history(self, session_id: str) -> List[Message]:
        """Seed a freshly created session from the transcript store"""

        if self.transcript_store is None:
            return []
        messages = await self.transcript_store.get_messages(session_id)
        return messages[-self.context_manager.retained_tail:] if self.context_manager.retained_tail else []

    async def _run_graph(self, session: Session, user_input: str, sink: TurnSink) -> TurnGraphState:
        initial_state: TurnGraphState = {
            "session_id": session.id,
            "user_input": user_input,
            "user_message": None,
            "history": [],
            "scratch": [],
            "phase": TurnState.START,
            "depth": 0,
            "pending_calls": [],
            "last_results": [],
            "invoked": [],
            "streamed": [],
            "failure": None,
        }

        config: RunnableConfig = {
            "configurable": {"session": session, "sink": sink},
            # Every round-trip is three graph steps; the depth counter trips first
            "recursion_limit": 3 * (self.max_depth + 2) + 4,
        }

        return await self.workflow.ainvoke(initial_state, config=config)

    async def handle_turn(self, request: TurnRequest, sink: TurnSink) -> TurnResult:
        """Process one turn end to end. Never raises for turn-level failures."""

        started = time.perf_counter()
        metrics.increment_counter("turns.started")

        with structlog.contextvars.bound_contextvars(session_id=request.session_id):
            async with self.session_registry.session(request.session_id, loader=self._load_history) as session:
                session.set_display_name(request.display_name)
                result = await self._execute(session, request, sink)

                if result.state == TurnState.DONE:
                    # Bounded by the summary timeout; keeps the stored log within the window
                    await self.context_manager.compact(session, self.inference)

        metrics.record_latency("turn", (time.perf_counter() - started) * 1000, tags={"state": result.state.value})
        return result

    async def _execute(self, session: Session, request: TurnRequest, sink: TurnSink) -> TurnResult:
        def failed(message: str, depth: int = 0) -> TurnResult:
            return TurnResult(session_id=session.id, state=TurnState.ERROR, error=message, depth=depth)

        try:
            if self.turn_timeout:
                final = await asyncio.wait_for(self._run_graph(session, request.user_input, sink), self.turn_timeout)
            else:
                final = await self._run_graph(session, request.user_input, sink)
        except asyncio.TimeoutError:
            logger.error("Turn timed out", session_id=session.id, timeout=self.turn_timeout)
            await sink.emit_error(TURN_TIMEOUT_MESSAGE)
            return failed(TURN_TIMEOUT_MESSAGE)
        except GraphRecursionError:
            metrics.increment_counter("turns.loop_detected")
            await sink.emit_error(LOGIC_LOOP_MESSAGE)
            return failed(LOGIC_LOOP_MESSAGE, self.max_depth)
        except Exception as e:
            logger.exception("Unexpected error in agent loop", session_id=session.id, error=str(e))
            await sink.emit_error(INTERNAL_ERROR_MESSAGE)
            return failed(INTERNAL_ERROR_MESSAGE)

        if final["phase"] == TurnState.ERROR:
            failure = final.get("failure")
            error = str(failure) if failure else INTERNAL_ERROR_MESSAGE
            await sink.emit_error(error)
            return failed(error, final["depth"])

        text = "".join(final["streamed"])
        await self.streaming_handler.finalize_turn(sink, session.id, final["user_message"].content, text)

        return TurnResult(
            session_id=session.id,
            state=TurnState.DONE,
            text=text,
            depth=final["depth"],
            capability_calls=len(final["invoked"])
        )
