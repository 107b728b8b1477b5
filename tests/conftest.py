"""Shared fixtures: screen/flow payloads, actors, storage and engine."""

from datetime import date, datetime, timedelta, timezone

import pytest

from formflow.config import Settings
from formflow.definitions import FlowDefinition
from formflow.engine import WorkflowEngine
from formflow.events import EventEmitter, HistoryRecorder
from formflow.storage import InMemoryStorage
from formflow.types import Actor, Role


TODAY = date(2025, 6, 15)


def field(name, label=None, **extra):
    payload = {"name": name, "label": label or name.replace("_", " ").title(), "fieldType": "TEXT"}
    payload.update(extra)
    return payload


def screen(code, fields, **flags):
    payload = {"id": f"scr_{code}", "code": code, "name": code.replace("_", " ").title(), "fields": fields}
    payload.update(flags)
    return payload


def flow_payload(flow_id, screens, branch_id="br_1", **grants):
    return {
        "id": flow_id,
        "code": flow_id,
        "name": flow_id.replace("_", " ").title(),
        "flowScreens": [
            {"tabOrder": index + 1, "tabName": s["name"], "screen": s}
            for index, s in enumerate(screens)
        ],
        "assignments": [dict({"branchId": branch_id}, **grants)],
    }


CUSTOMER = screen("customer_enquiry", [
    field(
        "first_name", "First Name", isRequired=True, sortOrder=1,
        validationRegex="^[a-zA-Z\\s]{2,50}$",
        validationMessage="First name must contain only letters (2-50 characters)",
    ),
    field(
        "mobile_no", "Mobile No", fieldType="PHONE", isRequired=True, sortOrder=2,
        validationRegex="^[6-9][0-9]{9}$",
        validationMessage="Mobile number must be 10 digits starting with 6-9",
    ),
    field(
        "booking_date", "Booking Date", fieldType="DATE", sortOrder=3,
        validationMessage="Booking date cannot be in the past",
    ),
    field("remarks", "Remarks", fieldType="TEXTAREA", maxLength=20, sortOrder=4),
])

VEHICLE = screen("vehicle_details", [
    field(
        "brand", "Brand", fieldType="SELECT", isRequired=True, sortOrder=1,
        options=[
            {"value": "Maruti Suzuki", "label": "Maruti Suzuki"},
            {"value": "Hyundai", "label": "Hyundai"},
            {"value": "Tata", "label": "Tata"},
        ],
    ),
    field(
        "model", "Model", isRequired=True, sortOrder=2,
        conditionalField="vehicle_details.brand", conditionalValue="Hyundai,Tata",
    ),
    field("quantity", "Quantity", fieldType="NUMBER", minValue=1, maxValue=5, sortOrder=3),
    field("dealer_code", "Dealer Code", sortOrder=4, editableByAssociate=False),
])

INSURANCE = screen("insurance_nominee_demographics", [
    field("insurer_name", "Insurer Name", isRequired=True, sortOrder=1, editableByAssociate=True),
    field("premium", "Premium", fieldType="NUMBER", sortOrder=2, minValue=0),
], requiresInsuranceApproval=True)

AMOUNTS = screen("amounts_tax", [
    field("total_amount", "Total Amount", fieldType="NUMBER", isRequired=True, minValue=0, sortOrder=1),
], requiresApproval=True)

INVOICE = screen("invoice", [
    field("invoice_number", "Invoice Number", isRequired=True, sortOrder=1),
], isPostApproval=True)


VALID_DATA = {
    "customer_enquiry": {"first_name": "Asha", "mobile_no": "9876543210", "booking_date": "2025-06-20"},
    "vehicle_details": {"brand": "Tata", "model": "Nexon", "quantity": 2},
    "insurance_nominee_demographics": {"insurer_name": "Acme Insure", "premium": "4500"},
    "amounts_tax": {"total_amount": 125000},
}


@pytest.fixture
def plain_flow():
    return FlowDefinition.from_dict(flow_payload("flow_plain", [CUSTOMER]))


@pytest.fixture
def dual_flow():
    return FlowDefinition.from_dict(
        flow_payload("flow_dual", [CUSTOMER, VEHICLE, INSURANCE, AMOUNTS, INVOICE])
    )


@pytest.fixture
def insurance_flow():
    return FlowDefinition.from_dict(flow_payload("flow_insurance", [CUSTOMER, INSURANCE]))


@pytest.fixture
def manager_flow():
    return FlowDefinition.from_dict(flow_payload("flow_manager", [CUSTOMER, AMOUNTS, INVOICE]))


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def storage(plain_flow, dual_flow, insurance_flow, manager_flow):
    return InMemoryStorage([plain_flow, dual_flow, insurance_flow, manager_flow])


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def recorder(emitter):
    return HistoryRecorder(emitter)


@pytest.fixture
def clock():
    start = datetime(2025, 6, 15, 9, 0, tzinfo=timezone.utc)
    ticks = {"n": 0}

    def now():
        ticks["n"] += 1
        return start + timedelta(seconds=ticks["n"])

    return now


@pytest.fixture
def engine(storage, emitter, settings, clock):
    return WorkflowEngine(storage, emitter=emitter, settings=settings, clock=clock, today=lambda: TODAY)


@pytest.fixture
def associate():
    return Actor(id="u_assoc", role=Role.ASSOCIATE, branch_id="br_1")


@pytest.fixture
def other_associate():
    return Actor(id="u_assoc_2", role=Role.ASSOCIATE, branch_id="br_1")


@pytest.fixture
def manager():
    return Actor(id="u_mgr", role=Role.MANAGER, branch_id="br_1")


@pytest.fixture
def insurance_exec():
    return Actor(id="u_ins", role=Role.INSURANCE_EXECUTIVE, branch_id="br_1")


@pytest.fixture
def viewer():
    return Actor(id="u_view", role=Role.VIEWER, branch_id="br_1")


@pytest.fixture
def superadmin():
    return Actor(id="u_root", role=Role.SUPERADMIN)


@pytest.fixture
def other_branch_manager():
    return Actor(id="u_mgr_2", role=Role.MANAGER, branch_id="br_2")


@pytest.fixture
def filled(engine):
    """Start a submission and save every fillable tab with valid data."""

    def fill(flow_id, actor):
        flow = engine.storage.load_flow_with_screens(flow_id)
        submission = engine.start_submission(flow_id, actor)
        for index, fs in enumerate(flow.flow_screens):
            if fs.screen.is_post_approval:
                continue
            submission = engine.save_tab(submission.id, index, VALID_DATA[fs.screen.code], actor)
        return submission

    return fill
