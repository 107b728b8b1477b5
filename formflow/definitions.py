"""Flow, screen and field definitions for the formflow workflow engine.

Definitions are authored by administrators and handed to the engine by the
storage collaborator. They are immutable while a submission is being filled:
submissions reference them by value, they are never copied into form data.

Payloads arrive in the camelCase shape the administration layer stores:

    {
        "id": "flow_1", "code": "vehicle_sale", "name": "Vehicle Sale",
        "flowScreens": [
            {"tabOrder": 1, "tabName": "Customer", "screen": {
                "id": "scr_1", "code": "customer_enquiry", "name": "Customer Enquiry",
                "requiresApproval": False, "requiresInsuranceApproval": False,
                "isPostApproval": False,
                "fields": [{"name": "first_name", "label": "First Name",
                            "fieldType": "TEXT", "isRequired": True}]
            }}
        ],
        "assignments": [{"branchId": "br_1", "accessibleByManager": True}]
    }

``FlowDefinition.from_dict`` checks the payload structure with a Draft 7 JSON
Schema, then builds the object graph. Conditional rules are parsed once here
into tagged references so evaluation never re-splits strings.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from jsonschema import Draft7Validator

from formflow.errors import DefinitionError, NotFound
from formflow.types import FieldType, Role

logger = logging.getLogger(__name__)


_NULLABLE_NUMBER = {"type": ["number", "null"]}
_NULLABLE_STRING = {"type": ["string", "null"]}
_NULLABLE_BOOL = {"type": ["boolean", "null"]}

FIELD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["name", "label", "fieldType"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "label": {"type": "string"},
        "fieldType": {"type": "string", "enum": [t.value for t in FieldType]},
        "isRequired": _NULLABLE_BOOL,
        "validationRegex": _NULLABLE_STRING,
        "validationMessage": _NULLABLE_STRING,
        "minLength": _NULLABLE_NUMBER,
        "maxLength": _NULLABLE_NUMBER,
        "minValue": _NULLABLE_NUMBER,
        "maxValue": _NULLABLE_NUMBER,
        "options": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "required": ["value"],
                "properties": {"value": {}, "label": _NULLABLE_STRING},
            },
        },
        "conditionalField": _NULLABLE_STRING,
        "conditionalValue": _NULLABLE_STRING,
        "sortOrder": _NULLABLE_NUMBER,
        "placeholder": _NULLABLE_STRING,
        "defaultValue": _NULLABLE_STRING,
        "visibleToManager": _NULLABLE_BOOL,
        "visibleToAssociate": _NULLABLE_BOOL,
        "visibleToViewer": _NULLABLE_BOOL,
        "editableByManager": _NULLABLE_BOOL,
        "editableByAssociate": _NULLABLE_BOOL,
        "editableByViewer": _NULLABLE_BOOL,
    },
}

SCREEN_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["code"],
    "properties": {
        "id": {"type": ["string", "null"]},
        "code": {"type": "string", "minLength": 1},
        "name": _NULLABLE_STRING,
        "requiresApproval": _NULLABLE_BOOL,
        "requiresInsuranceApproval": _NULLABLE_BOOL,
        "isPostApproval": _NULLABLE_BOOL,
        "fields": {"type": "array", "items": FIELD_SCHEMA},
    },
}

FLOW_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["id", "flowScreens"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "code": _NULLABLE_STRING,
        "name": _NULLABLE_STRING,
        "flowScreens": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["tabOrder", "screen"],
                "properties": {
                    "tabOrder": {"type": "integer"},
                    "tabName": _NULLABLE_STRING,
                    "screen": SCREEN_SCHEMA,
                },
            },
        },
        "assignments": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["branchId"],
                "properties": {
                    "branchId": {"type": "string"},
                    "accessibleByManager": _NULLABLE_BOOL,
                    "accessibleByAssociate": _NULLABLE_BOOL,
                    "accessibleByViewer": _NULLABLE_BOOL,
                },
            },
        },
    },
}

_flow_validator = Draft7Validator(FLOW_SCHEMA)
_screen_validator = Draft7Validator(SCREEN_SCHEMA)


def _check(validator: Draft7Validator, data: Any, what: str) -> None:
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        first = errors[0]
        path = ".".join(str(p) for p in first.path) or "<root>"
        raise DefinitionError(f"Invalid {what} definition at '{path}': {first.message}")


def _flag(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key)
    return default if value is None else bool(value)


# ---- Conditional references ----


@dataclass(frozen=True)
class SameScreen:
    """Reference to a field on the same screen."""
    field_name: str


@dataclass(frozen=True)
class CrossScreen:
    """Reference to a field on another screen, looked up by screen code."""
    screen_code: str
    field_name: str


Reference = Union[SameScreen, CrossScreen]


def parse_reference(raw: Optional[str]) -> Optional[Reference]:
    """Parse a ``conditionalField`` string into a tagged reference.

    Splits on the first ``.`` only. Returns None for a blank or malformed
    reference.

    Examples:
        >>> parse_reference("vehicle_details.brand")
        CrossScreen(screen_code='vehicle_details', field_name='brand')
        >>> parse_reference("brand")
        SameScreen(field_name='brand')
        >>> parse_reference(".brand") is None
        True
    """
    text = (raw or "").strip()
    if not text:
        return None
    if "." in text:
        screen_code, field_name = text.split(".", 1)
        screen_code, field_name = screen_code.strip(), field_name.strip()
        if not screen_code or not field_name:
            return None
        return CrossScreen(screen_code=screen_code, field_name=field_name)
    return SameScreen(field_name=text)


def parse_allowed_values(raw: Optional[str]) -> FrozenSet[str]:
    """Split a comma-separated ``conditionalValue`` into a lower-cased set."""
    return frozenset(
        part.strip().lower() for part in (raw or "").split(",") if part.strip()
    )


@dataclass(frozen=True)
class Condition:
    """A parsed conditional visibility rule.

    ``reference`` is None when the administrator wrote a reference that could
    not be parsed; such a rule never matches.
    """
    raw_field: str
    raw_value: str
    reference: Optional[Reference]
    allowed_values: FrozenSet[str]

    @classmethod
    def parse(cls, raw_field: Optional[str], raw_value: Optional[str]) -> Optional["Condition"]:
        # A rule only exists when both halves are filled in
        if not (raw_field or "").strip() or not (raw_value or "").strip():
            return None
        condition = cls(
            raw_field=raw_field,
            raw_value=raw_value,
            reference=parse_reference(raw_field),
            allowed_values=parse_allowed_values(raw_value),
        )
        if condition.reference is None or not condition.allowed_values:
            logger.warning(
                "Malformed conditional rule %r=%r; field will stay hidden", raw_field, raw_value
            )
        return condition


# ---- Fields and screens ----


@dataclass(frozen=True)
class FieldOption:
    value: Any
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "label": self.label}


@dataclass(frozen=True)
class RolePermissions:
    """Per-role visibility and editability flags for one field."""
    visible_to_manager: bool = True
    visible_to_associate: bool = True
    visible_to_viewer: bool = True
    editable_by_manager: bool = True
    editable_by_associate: bool = True
    editable_by_viewer: bool = False

    def visible_to(self, role: Role) -> Optional[bool]:
        """Return the role's visibility flag, or None for roles without one."""
        return {
            Role.MANAGER: self.visible_to_manager,
            Role.ASSOCIATE: self.visible_to_associate,
            Role.VIEWER: self.visible_to_viewer,
        }.get(role)

    def editable_by(self, role: Role) -> Optional[bool]:
        """Return the role's editable flag, or None for roles without one."""
        return {
            Role.MANAGER: self.editable_by_manager,
            Role.ASSOCIATE: self.editable_by_associate,
            Role.VIEWER: self.editable_by_viewer,
        }.get(role)


@dataclass(frozen=True)
class FieldDefinition:
    """One input on a screen.

    Attributes:
        name: Key into the screen's form data, unique within the screen
        label: Display label, used in validation messages
        type: Input type
        is_required: Whether a visible field must be non-empty to save
        validation_regex: Optional pattern the stringified value must match
        validation_message: Message reported when the regex (or date rule) fails
        min_length / max_length: Bounds on string length
        min_value / max_value: Bounds on NUMBER values
        options: Ordered choices for SELECT, MULTISELECT and RADIO
        condition: Parsed conditional visibility rule, if any
        sort_order: Position within the screen
        permissions: Per-role visibility/editability flags
    """
    name: str
    label: str
    type: FieldType = FieldType.TEXT
    is_required: bool = False
    validation_regex: Optional[str] = None
    validation_message: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    options: Tuple[FieldOption, ...] = ()
    condition: Optional[Condition] = None
    sort_order: int = 0
    placeholder: Optional[str] = None
    default_value: Optional[str] = None
    permissions: RolePermissions = field(default_factory=RolePermissions)

    @property
    def conditional_field(self) -> Optional[str]:
        return self.condition.raw_field if self.condition else None

    @property
    def conditional_value(self) -> Optional[str]:
        return self.condition.raw_value if self.condition else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldDefinition":
        """Create FieldDefinition from a camelCase dict."""
        options = tuple(
            FieldOption(value=o["value"], label=o.get("label") or str(o["value"]))
            for o in (data.get("options") or [])
        )
        return cls(
            name=data["name"],
            label=data.get("label") or data["name"],
            type=FieldType(data.get("fieldType", FieldType.TEXT.value)),
            is_required=bool(data.get("isRequired")),
            validation_regex=data.get("validationRegex") or None,
            validation_message=data.get("validationMessage") or None,
            min_length=data.get("minLength"),
            max_length=data.get("maxLength"),
            min_value=data.get("minValue"),
            max_value=data.get("maxValue"),
            options=options,
            condition=Condition.parse(data.get("conditionalField"), data.get("conditionalValue")),
            sort_order=int(data.get("sortOrder") or 0),
            placeholder=data.get("placeholder"),
            default_value=data.get("defaultValue"),
            permissions=RolePermissions(
                visible_to_manager=_flag(data, "visibleToManager", True),
                visible_to_associate=_flag(data, "visibleToAssociate", True),
                visible_to_viewer=_flag(data, "visibleToViewer", True),
                editable_by_manager=_flag(data, "editableByManager", True),
                editable_by_associate=_flag(data, "editableByAssociate", True),
                editable_by_viewer=_flag(data, "editableByViewer", False),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        p = self.permissions
        return {
            "name": self.name,
            "label": self.label,
            "fieldType": self.type.value,
            "isRequired": self.is_required,
            "validationRegex": self.validation_regex,
            "validationMessage": self.validation_message,
            "minLength": self.min_length,
            "maxLength": self.max_length,
            "minValue": self.min_value,
            "maxValue": self.max_value,
            "options": [o.to_dict() for o in self.options],
            "conditionalField": self.conditional_field,
            "conditionalValue": self.conditional_value,
            "sortOrder": self.sort_order,
            "placeholder": self.placeholder,
            "defaultValue": self.default_value,
            "visibleToManager": p.visible_to_manager,
            "visibleToAssociate": p.visible_to_associate,
            "visibleToViewer": p.visible_to_viewer,
            "editableByManager": p.editable_by_manager,
            "editableByAssociate": p.editable_by_associate,
            "editableByViewer": p.editable_by_viewer,
        }


@dataclass(frozen=True)
class ScreenDefinition:
    """A reusable set of fields forming one logical form page."""
    code: str
    fields: Tuple[FieldDefinition, ...] = ()
    id: Optional[str] = None
    name: Optional[str] = None
    requires_approval: bool = False
    requires_insurance_approval: bool = False
    is_post_approval: bool = False

    def __post_init__(self):
        ordered = tuple(sorted(self.fields, key=lambda f: f.sort_order))
        object.__setattr__(self, "fields", ordered)
        names = [f.name for f in ordered]
        if len(names) != len(set(names)):
            raise DefinitionError(f"Screen '{self.code}' has duplicate field names")

    @property
    def field_names(self) -> FrozenSet[str]:
        return frozenset(f.name for f in self.fields)

    @property
    def display_name(self) -> str:
        return self.name or self.code

    def field(self, name: str) -> FieldDefinition:
        for f in self.fields:
            if f.name == name:
                return f
        raise NotFound(f"Field '{name}' not found on screen '{self.code}'")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScreenDefinition":
        """Create ScreenDefinition from a camelCase dict, checking its structure."""
        _check(_screen_validator, data, "screen")
        return cls._build(data)

    @classmethod
    def _build(cls, data: Dict[str, Any]) -> "ScreenDefinition":
        return cls(
            id=data.get("id"),
            code=data["code"],
            name=data.get("name"),
            fields=tuple(FieldDefinition.from_dict(f) for f in data.get("fields") or []),
            requires_approval=bool(data.get("requiresApproval")),
            requires_insurance_approval=bool(data.get("requiresInsuranceApproval")),
            is_post_approval=bool(data.get("isPostApproval")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "requiresApproval": self.requires_approval,
            "requiresInsuranceApproval": self.requires_insurance_approval,
            "isPostApproval": self.is_post_approval,
            "fields": [f.to_dict() for f in self.fields],
        }


# ---- Flows ----


@dataclass(frozen=True)
class FlowScreen:
    """A screen placed in a flow as a tab."""
    screen: ScreenDefinition
    tab_order: int
    tab_name: str


@dataclass(frozen=True)
class BranchAssignment:
    """Grants a branch access to a flow, per role."""
    branch_id: str
    accessible_by_manager: bool = True
    accessible_by_associate: bool = True
    accessible_by_viewer: bool = False

    def grants(self, role: Role) -> bool:
        # Insurance executives use the associate grant
        if role in (Role.ASSOCIATE, Role.INSURANCE_EXECUTIVE):
            return self.accessible_by_associate
        if role == Role.MANAGER:
            return self.accessible_by_manager
        if role == Role.VIEWER:
            return self.accessible_by_viewer
        return role == Role.SUPERADMIN


@dataclass(frozen=True)
class FlowDefinition:
    """An ordered composition of screens forming one submittable form.

    Tab index is the position in ``flow_screens`` after sorting by
    ``tab_order``; tab orders must be dense and unique.
    """
    id: str
    flow_screens: Tuple[FlowScreen, ...] = ()
    code: Optional[str] = None
    name: Optional[str] = None
    branch_assignments: Tuple[BranchAssignment, ...] = ()

    def __post_init__(self):
        ordered = tuple(sorted(self.flow_screens, key=lambda fs: fs.tab_order))
        orders = [fs.tab_order for fs in ordered]
        if len(orders) != len(set(orders)):
            raise DefinitionError(f"Flow '{self.id}' has duplicate tab orders: {orders}")
        if orders and orders[-1] - orders[0] != len(orders) - 1:
            raise DefinitionError(f"Flow '{self.id}' tab orders are not dense: {orders}")
        codes = [fs.screen.code.lower() for fs in ordered]
        if len(codes) != len(set(codes)):
            raise DefinitionError(f"Flow '{self.id}' uses a screen code more than once")
        object.__setattr__(self, "flow_screens", ordered)

    def __len__(self) -> int:
        return len(self.flow_screens)

    @property
    def screens(self) -> List[ScreenDefinition]:
        return [fs.screen for fs in self.flow_screens]

    def tab(self, tab_index: int) -> FlowScreen:
        if not 0 <= tab_index < len(self.flow_screens):
            raise NotFound(f"Invalid tab index {tab_index} for flow '{self.id}'")
        return self.flow_screens[tab_index]

    def screen_at(self, tab_index: int) -> ScreenDefinition:
        return self.tab(tab_index).screen

    def screen_by_code(self, code: str) -> Optional[ScreenDefinition]:
        wanted = code.lower()
        for fs in self.flow_screens:
            if fs.screen.code.lower() == wanted:
                return fs.screen
        return None

    def tab_index_of(self, code: str) -> int:
        wanted = code.lower()
        for index, fs in enumerate(self.flow_screens):
            if fs.screen.code.lower() == wanted:
                return index
        raise NotFound(f"Screen '{code}' is not part of flow '{self.id}'")

    def assignment_for(self, branch_id: Optional[str]) -> Optional[BranchAssignment]:
        for assignment in self.branch_assignments:
            if assignment.branch_id == branch_id:
                return assignment
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowDefinition":
        """Create FlowDefinition from a camelCase dict.

        Raises:
            DefinitionError: If the payload does not match FLOW_SCHEMA, or tab
                orders are duplicated or not dense
        """
        _check(_flow_validator, data, "flow")
        flow_screens = tuple(
            FlowScreen(
                screen=ScreenDefinition._build(fs["screen"]),
                tab_order=fs["tabOrder"],
                tab_name=fs.get("tabName") or fs["screen"].get("name") or fs["screen"]["code"],
            )
            for fs in data["flowScreens"]
        )
        assignments = tuple(
            BranchAssignment(
                branch_id=a["branchId"],
                accessible_by_manager=_flag(a, "accessibleByManager", True),
                accessible_by_associate=_flag(a, "accessibleByAssociate", True),
                accessible_by_viewer=_flag(a, "accessibleByViewer", False),
            )
            for a in data.get("assignments") or []
        )
        return cls(
            id=data["id"],
            code=data.get("code"),
            name=data.get("name"),
            flow_screens=flow_screens,
            branch_assignments=assignments,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "flowScreens": [
                {"tabOrder": fs.tab_order, "tabName": fs.tab_name, "screen": fs.screen.to_dict()}
                for fs in self.flow_screens
            ],
            "assignments": [
                {
                    "branchId": a.branch_id,
                    "accessibleByManager": a.accessible_by_manager,
                    "accessibleByAssociate": a.accessible_by_associate,
                    "accessibleByViewer": a.accessible_by_viewer,
                }
                for a in self.branch_assignments
            ],
        }


__all__ = [
    "FIELD_SCHEMA",
    "SCREEN_SCHEMA",
    "FLOW_SCHEMA",
    "SameScreen",
    "CrossScreen",
    "Reference",
    "parse_reference",
    "parse_allowed_values",
    "Condition",
    "FieldOption",
    "RolePermissions",
    "FieldDefinition",
    "ScreenDefinition",
    "FlowScreen",
    "BranchAssignment",
    "FlowDefinition",
]
