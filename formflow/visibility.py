"""Field visibility and editability resolution.

Pure functions over supplied state. Nothing here raises on a badly configured
rule: administrators may leave rules blank or half-filled, and a broken rule
must degrade to "not visible" / "not editable" rather than lock users out.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from formflow.config import Settings, settings as default_settings
from formflow.definitions import CrossScreen, FieldDefinition, Reference, SameScreen, ScreenDefinition
from formflow.submission import FormData
from formflow.types import EDITABLE_STATUSES, Role, SubmissionStatus


# Roles that see every field regardless of per-role flags
_SEE_ALL_ROLES = frozenset({Role.SUPERADMIN, Role.INSURANCE_EXECUTIVE})


def _lookup_screen(form_data: Mapping[str, Any], screen_code: str) -> Optional[Mapping[str, Any]]:
    if screen_code in form_data:
        return form_data[screen_code]
    wanted = screen_code.lower()
    for key, values in form_data.items():
        if key.lower() == wanted:
            return values
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (list, tuple, dict, set)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def resolve_reference(
    reference: Reference,
    form_data: FormData,
    screen_code: Optional[str] = None,
    current_values: Optional[Mapping[str, Any]] = None,
) -> Optional[str]:
    """Resolve the value a conditional rule points at, as a lower-cased string.

    Same-screen references read ``current_values`` when given (the values being
    saved), else the stored data for ``screen_code``. A cross-screen reference
    naming ``screen_code`` itself is treated as same-screen.
    """
    if (
        isinstance(reference, CrossScreen)
        and screen_code is not None
        and reference.screen_code.lower() == screen_code.lower()
    ):
        reference = SameScreen(reference.field_name)
    if isinstance(reference, CrossScreen):
        values = _lookup_screen(form_data, reference.screen_code)
        if values is None:
            return None
        raw = values.get(reference.field_name)
    elif isinstance(reference, SameScreen):
        if current_values is not None:
            values = current_values
        elif screen_code is not None:
            values = _lookup_screen(form_data, screen_code) or {}
        else:
            values = {}
        raw = values.get(reference.field_name)
    else:
        return None
    text = _as_text(raw)
    return text.lower() if text else None


def is_visible(
    field: FieldDefinition,
    role: Role,
    form_data: FormData,
    screen_code: Optional[str] = None,
    current_values: Optional[Mapping[str, Any]] = None,
) -> bool:
    """Decide whether a field is shown to ``role`` given the current form data."""
    if role not in _SEE_ALL_ROLES and not field.permissions.visible_to(role):
        return False

    condition = field.condition
    if condition is None:
        return True
    if condition.reference is None or not condition.allowed_values:
        return False

    value = resolve_reference(condition.reference, form_data, screen_code, current_values)
    if not value:
        return False
    return value.strip() in condition.allowed_values


def insurance_override_active(
    role: Role,
    status: SubmissionStatus,
    screen: Optional[ScreenDefinition],
    cfg: Optional[Settings] = None,
) -> bool:
    """Whether the insurance reviewer may amend this screen in place."""
    cfg = cfg or default_settings
    if role != Role.INSURANCE_EXECUTIVE or screen is None or not screen.requires_insurance_approval:
        return False
    if status == SubmissionStatus.PENDING_INSURANCE_APPROVAL:
        return True
    return (
        cfg.INSURANCE_EDIT_DURING_MANAGER_REVIEW
        and status == SubmissionStatus.PENDING_MANAGER_APPROVAL
    )


def edit_window_open(
    status: SubmissionStatus,
    role: Role,
    screen: Optional[ScreenDefinition] = None,
    cfg: Optional[Settings] = None,
) -> bool:
    if role == Role.VIEWER:
        return False
    return status in EDITABLE_STATUSES or insurance_override_active(role, status, screen, cfg)


def is_editable(
    field: FieldDefinition,
    role: Role,
    status: SubmissionStatus,
    gate_override: bool = False,
) -> bool:
    """Decide whether a field accepts writes from ``role``.

    Args:
        field: The field definition
        role: Acting role
        status: Current submission status
        gate_override: True when the insurance override applies to the
            field's screen (see :func:`insurance_override_active`)
    """
    if gate_override:
        return True
    if status not in EDITABLE_STATUSES:
        return False
    if role == Role.SUPERADMIN:
        return True
    return bool(field.permissions.editable_by(role))


@dataclass(frozen=True)
class FieldState:
    name: str
    visible: bool
    editable: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "visible": self.visible, "editable": self.editable}


def field_states(
    screen: ScreenDefinition,
    role: Role,
    status: SubmissionStatus,
    form_data: FormData,
    cfg: Optional[Settings] = None,
) -> List[FieldState]:
    """Resolve visibility and editability for every field on a screen."""
    override = insurance_override_active(role, status, screen, cfg)
    states = []
    for f in screen.fields:
        visible = is_visible(f, role, form_data, screen_code=screen.code)
        editable = visible and is_editable(f, role, status, gate_override=override)
        states.append(FieldState(name=f.name, visible=visible, editable=editable))
    return states


__all__ = [
    "resolve_reference",
    "is_visible",
    "is_editable",
    "insurance_override_active",
    "edit_window_open",
    "FieldState",
    "field_states",
]
