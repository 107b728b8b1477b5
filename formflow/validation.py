"""Tab validation engine for the formflow workflow engine.

Validates the values proposed for one tab before they are persisted. Only
fields that are currently visible to the acting role are checked; hidden
fields may keep stale values without blocking the save.

Rules, per visible field and in field order:
    1. required      - empty value on a required field
    2. regex         - stringified value must match ``validation_regex``
    3. bounds        - string length and NUMBER value bounds (Draft 7 schema)
    4. booking date  - the configured DATE field may not be in the past

All problems are collected in one pass and returned together.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional

from dateutil import parser as date_parser
from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from formflow.config import Settings, settings as default_settings
from formflow.definitions import FieldDefinition, ScreenDefinition
from formflow.errors import FieldError, ValidationFailed
from formflow.submission import FormData
from formflow.types import FieldErrorCode, FieldType, Role
from formflow.visibility import is_visible

logger = logging.getLogger(__name__)


def is_empty(value: Any) -> bool:
    """Whether a submitted value counts as unset."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_stringify(v) for v in value)
    return str(value)


def _fmt(number: Any) -> str:
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return str(number)


def _as_number(value: Any) -> Any:
    """Coerce a numeric string to a number; anything else is returned unchanged."""
    if isinstance(value, bool) or isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return value
        return int(number) if number.is_integer() else number
    return value


def _integral(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating one tab's values.

    Attributes:
        is_valid: Whether every visible field passed
        errors: Field errors in field order (empty if valid)
        checked_fields: Names of fields that were visible and checked
        skipped_fields: Names of fields skipped because they were hidden
    """
    is_valid: bool
    errors: List[FieldError]
    checked_fields: List[str] = field(default_factory=list)
    skipped_fields: List[str] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if not self.is_valid:
            raise ValidationFailed(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "checkedFields": self.checked_fields,
            "skippedFields": self.skipped_fields,
        }


class TabValidator:
    """Validates one tab's proposed values against its screen definition.

    Examples:
        >>> from formflow.definitions import FieldDefinition, ScreenDefinition
        >>> screen = ScreenDefinition(code="customer", fields=(
        ...     FieldDefinition(name="first_name", label="First Name", is_required=True),
        ... ))
        >>> result = TabValidator().validate(screen, {}, Role.ASSOCIATE, {})
        >>> [e.message for e in result.errors]
        ['First Name is required']
    """

    def __init__(self, cfg: Optional[Settings] = None, today: Optional[Callable[[], date]] = None):
        self.settings = cfg or default_settings
        self._today = today or date.today

    def validate(
        self,
        screen: ScreenDefinition,
        values: Mapping[str, Any],
        role: Role,
        form_data: FormData,
    ) -> ValidationResult:
        """Validate ``values`` for ``screen`` as seen by ``role``.

        Args:
            screen: Screen definition of the tab being saved
            values: Proposed values for the tab
            role: Acting role (drives per-role visibility)
            form_data: The rest of the submission's data, for cross-screen rules

        Returns:
            ValidationResult with every error found
        """
        errors: List[FieldError] = []
        checked: List[str] = []
        skipped: List[str] = []

        for f in screen.fields:
            if not is_visible(f, role, form_data, screen_code=screen.code, current_values=values):
                skipped.append(f.name)
                continue
            checked.append(f.name)
            errors.extend(self._check_field(screen, f, values.get(f.name)))

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            checked_fields=checked,
            skipped_fields=skipped,
        )

    def _check_field(self, screen: ScreenDefinition, f: FieldDefinition, value: Any) -> List[FieldError]:
        if is_empty(value):
            # Output screens are auto-populated, never filled by hand
            if f.is_required and not screen.is_post_approval:
                return [FieldError(f.name, f"{f.label} is required", FieldErrorCode.REQUIRED)]
            return []

        errors: List[FieldError] = []
        regex_error = self._check_regex(f, value)
        if regex_error is not None:
            errors.append(regex_error)
        errors.extend(self._check_bounds(f, value))
        date_error = self._check_booking_date(f, value)
        if date_error is not None:
            errors.append(date_error)
        return errors

    def _check_regex(self, f: FieldDefinition, value: Any) -> Optional[FieldError]:
        if not f.validation_regex:
            return None
        try:
            pattern = re.compile(f.validation_regex)
        except re.error as exc:
            logger.warning("Ignoring invalid regex on field %s: %s", f.name, exc)
            return None
        if pattern.search(_stringify(value)):
            return None
        return FieldError(
            f.name,
            f.validation_message or f"{f.label} is invalid",
            FieldErrorCode.INVALID_FORMAT,
        )

    def _bounds_schema(self, f: FieldDefinition) -> Optional[Dict[str, Any]]:
        schema: Dict[str, Any] = {}
        if f.min_length is not None:
            schema["minLength"] = _integral(f.min_length)
        if f.max_length is not None:
            schema["maxLength"] = _integral(f.max_length)
        if f.type == FieldType.NUMBER:
            if f.min_value is not None:
                schema["minimum"] = f.min_value
            if f.max_value is not None:
                schema["maximum"] = f.max_value
        if not schema:
            return None
        try:
            Draft7Validator.check_schema(schema)
        except SchemaError as exc:
            logger.warning("Ignoring invalid bounds on field %s: %s", f.name, exc.message)
            return None
        return schema

    def _check_bounds(self, f: FieldDefinition, value: Any) -> List[FieldError]:
        schema = self._bounds_schema(f)
        if schema is None:
            return []
        instance = _as_number(value) if f.type == FieldType.NUMBER else value
        errors = []
        for error in Draft7Validator(schema).iter_errors(instance):
            errors.append(self._translate_error(f, error.validator, error.validator_value))
        return errors

    def _translate_error(self, f: FieldDefinition, validator: str, limit: Any) -> FieldError:
        if validator == "minLength":
            return FieldError(
                f.name, f"{f.label} must be at least {_fmt(limit)} characters", FieldErrorCode.TOO_SHORT
            )
        if validator == "maxLength":
            return FieldError(
                f.name, f"{f.label} must be at most {_fmt(limit)} characters", FieldErrorCode.TOO_LONG
            )
        if validator == "minimum":
            return FieldError(f.name, f"{f.label} must be at least {_fmt(limit)}", FieldErrorCode.BELOW_MINIMUM)
        if validator == "maximum":
            return FieldError(f.name, f"{f.label} must be at most {_fmt(limit)}", FieldErrorCode.ABOVE_MAXIMUM)
        return FieldError(f.name, f"{f.label} is invalid", FieldErrorCode.CUSTOM)

    def _check_booking_date(self, f: FieldDefinition, value: Any) -> Optional[FieldError]:
        if f.type != FieldType.DATE or f.name != self.settings.BOOKING_DATE_FIELD:
            return None
        if isinstance(value, date):
            chosen = value
        else:
            try:
                chosen = date_parser.parse(_stringify(value)).date()
            except (ValueError, OverflowError):
                # Unparseable dates are left to the regex rule
                return None
        if hasattr(chosen, "date"):
            chosen = chosen.date()
        if chosen >= self._today():
            return None
        return FieldError(
            f.name,
            f.validation_message or self.settings.BOOKING_DATE_MESSAGE,
            FieldErrorCode.PAST_DATE,
        )


__all__ = [
    "is_empty",
    "ValidationResult",
    "TabValidator",
]
