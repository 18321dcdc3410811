"""
Form-schema collaborator

Form fields are authored and rendered elsewhere. The engine treats request
data as an opaque blob and asks a validator whether it is acceptable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


class FormValidator(ABC):
    @abstractmethod
    def validate(self, form_template_id: Optional[str], data: Dict[str, Any]) -> ValidationResult:
        """Validate a request payload against its form template"""


class RequiredFieldsFormValidator(FormValidator):
    """
    Checks that each required field of a template is present and non-empty.

    Templates with no registered requirements accept any payload, so an
    empty registry behaves as a permissive validator.
    """

    def __init__(self, required_fields: Optional[Mapping[str, Iterable[str]]] = None):
        self._required: Dict[str, List[str]] = {
            str(template_id): list(fields)
            for template_id, fields in (required_fields or {}).items()
        }

    def register(self, form_template_id: str, fields: Iterable[str]) -> None:
        self._required[str(form_template_id)] = list(fields)

    def validate(self, form_template_id: Optional[str], data: Dict[str, Any]) -> ValidationResult:
        if form_template_id is None:
            return ValidationResult(valid=True)

        data = data or {}
        errors = []
        for name in self._required.get(str(form_template_id), []):
            value = data.get(name)
            if value is None or (isinstance(value, (str, list, dict)) and not value):
                errors.append(f"Field '{name}' is required")

        return ValidationResult(valid=not errors, errors=errors)
