import asyncio
import time
from typing import List

import structlog

from one_agent.domain.models.capability import CapabilityCall, CapabilityResult, Sentinel
from one_agent.infrastructure.observability.logging import agent_logger, metrics
from .tool_registry import CapabilityRegistry
from .tool_validator import CapabilityArgumentValidator

logger = structlog.get_logger(__name__)


# Execution with validation, timeout and sentinel conversion
class CapabilityExecutor:
    """Runs requested capability calls.

    Never raises for capability-level problems: unknown names and invalid
    arguments come back as INVALID_ARGUMENTS results without invoking
    anything, and provider exceptions or timeouts come back as the
    capability's default failure sentinel.
    """

    def __init__(self, registry: CapabilityRegistry):
        self.registry = registry
        self.validator = CapabilityArgumentValidator()

    async def execute(self, call: CapabilityCall, session_id: str) -> CapabilityResult:
        capability = self.registry.get(call.name)
        if capability is None:
            logger.warning("Unknown capability requested", capability=call.name, session_id=session_id)
            return CapabilityResult.failure(
                call.name,
                Sentinel.INVALID_ARGUMENTS,
                call_id=call.id,
                text=f"{Sentinel.INVALID_ARGUMENTS.value} Unknown capability '{call.name}'. "
                     f"Available: {', '.join(self.registry.names()) or 'none'}."
            )

        validation = self.validator.validate_call(capability, call.arguments)
        if not validation.is_valid:
            agent_logger.log_capability_execution(
                capability=call.name,
                session_id=session_id,
                arguments=call.arguments,
                ok=False,
                sentinel=Sentinel.INVALID_ARGUMENTS.value,
                error="; ".join(validation.errors)
            )
            return CapabilityResult.failure(
                call.name,
                Sentinel.INVALID_ARGUMENTS,
                call_id=call.id,
                text=f"{Sentinel.INVALID_ARGUMENTS.value} {call.name}: {'; '.join(validation.errors)}"
            )

        started = time.perf_counter()
        error = None
        try:
            if capability.timeout:
                text = await asyncio.wait_for(capability.invoke(call.arguments, session_id), capability.timeout)
            else:
                text = await capability.invoke(call.arguments, session_id)

            sentinel = capability.sentinel_for(text)
            result = CapabilityResult(
                call_id=call.id,
                name=call.name,
                ok=sentinel is None,
                sentinel=sentinel,
                text=text
            )

        except asyncio.TimeoutError:
            error = "Capability execution timeout"
            result = CapabilityResult.failure(call.name, capability.default_failure, call_id=call.id)
        except Exception as e:
            error = str(e)
            result = CapabilityResult.failure(call.name, capability.default_failure, call_id=call.id)

        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_latency("capability", duration_ms, tags={"capability": call.name})
        metrics.increment_counter("capability.calls", tags={"capability": call.name, "ok": str(result.ok)})
        agent_logger.log_capability_execution(
            capability=call.name,
            session_id=session_id,
            arguments=call.arguments,
            ok=result.ok,
            sentinel=result.sentinel.value if result.sentinel else None,
            duration_ms=duration_ms,
            error=error
        )

        return result

    async def execute_all(self, calls: List[CapabilityCall], session_id: str) -> List[CapabilityResult]:
        """Execute calls concurrently; results keep the request order"""
        return list(await asyncio.gather(*(self.execute(call, session_id) for call in calls)))
