from typing import Iterable, List, Optional
import re

POLICY_VIOLATION_MESSAGE = "Sensitive content detected. Please keep the conversation civil."

# Mainland China mobile numbers
PHONE_PATTERN = re.compile(r"1\d{10}")
PHONE_PLACEHOLDER = "[PHONE]"


class ContentPolicy:
    """Pre-inference input gate"""

    def __init__(self, denylist: Optional[Iterable[str]] = None, redact_phone_numbers: bool = True):
        self.denylist: List[str] = [term for term in (denylist or []) if term]
        self.redact_phone_numbers = redact_phone_numbers

    def find_violation(self, text: str) -> Optional[str]:
        """Return the first denylisted term contained in the text"""
        lowered = text.lower()
        for term in self.denylist:
            if term.lower() in lowered:
                return term
        return None

    def redact(self, text: str) -> str:
        if not self.redact_phone_numbers:
            return text
        return PHONE_PATTERN.sub(PHONE_PLACEHOLDER, text)
