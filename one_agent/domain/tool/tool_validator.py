from typing import Any, Dict, List

import jsonschema
from pydantic import BaseModel

from .tool_registry import CapabilityDescriptor


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = []


# Parameter validation
class CapabilityArgumentValidator:
    @staticmethod
    def validate_call(capability: CapabilityDescriptor, arguments: Dict[str, Any]) -> ValidationResult:
        if not isinstance(arguments, dict):
            return ValidationResult(is_valid=False, errors=["Arguments must be a JSON object"])

        try:
            jsonschema.validate(arguments, capability.argument_schema)
            return ValidationResult(is_valid=True)

        except jsonschema.ValidationError as e:
            return ValidationResult(is_valid=False, errors=[f"Schema validation failed: {e.message}"])
