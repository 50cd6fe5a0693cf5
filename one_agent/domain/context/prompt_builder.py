from typing import Dict, List, Optional, Sequence
from datetime import datetime
from importlib import resources
import re

from one_agent.domain.models.agent_state import Session
from one_agent.domain.tool.tool_registry import CapabilityDescriptor

DEFAULT_TEMPLATE = "agent_v1.md"
SUMMARY_HEADING = "[Conversation summary]"
NO_CAPABILITIES = "- None. Answer from the conversation alone."

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def load_template(name: str = DEFAULT_TEMPLATE) -> str:
    """Read a prompt template shipped in the one_agent.prompts package"""
    return resources.files("one_agent.prompts").joinpath(name).read_text(encoding="utf-8")


def render_template(template: str, variables: Dict[str, str]) -> str:
    """Replace {{name}} placeholders; unknown names render empty"""
    return _PLACEHOLDER.sub(lambda match: str(variables.get(match.group(1), "") or ""), template)


def render_capabilities(capabilities: Sequence[CapabilityDescriptor]) -> str:
    if not capabilities:
        return NO_CAPABILITIES
    return "\n".join(f"- `{capability.name}`: {capability.description}" for capability in capabilities)


def render_capability_rules(capabilities: Sequence[CapabilityDescriptor]) -> str:
    """One rule per capability that can fail with a sentinel.

    A follow-up capability is only named when it is registered too.
    """
    available = {capability.name for capability in capabilities}
    rules: List[str] = []

    for capability in capabilities:
        if not capability.failure_signals:
            continue
        signals = " or ".join(sorted(signal.value for signal in capability.failure_signals))
        if capability.fallback and capability.fallback in available:
            rules.append(
                f"- If `{capability.name}` returns {signals}, call `{capability.fallback}` next if the question "
                f"needs outside facts; never repeat the same `{capability.name}` call."
            )
        else:
            rules.append(
                f"- If `{capability.name}` returns {signals}, do not call it again; "
                "answer with what you already know."
            )

    return "\n".join(rules)


class PromptBuilder:
    """Builds the system prompt for each inference call"""

    def __init__(self, template: Optional[str] = None):
        self.template = template if template is not None else load_template()

    def build_system_prompt(
        self,
        session: Session,
        now: Optional[datetime] = None,
        capabilities: Sequence[CapabilityDescriptor] = ()
    ) -> str:
        now = now or datetime.now()
        prompt = render_template(self.template, {
            "currentTime": now.strftime("%Y-%m-%d %H:%M:%S"),
            "userName": session.display_name,
            "capabilities": render_capabilities(capabilities),
            "capabilityRules": render_capability_rules(capabilities),
        })
        if session.summary:
            prompt += f"\n\n{SUMMARY_HEADING}: {session.summary}"
        return prompt
