"""formflow: form submission and approval workflow engine.

formflow drives configurable multi-tab forms ("flows" made of reusable
"screens") through their lifecycle:
- Per-role, condition-driven field visibility and editability
- Per-tab validation with progressive, gated saving
- A submission state machine with insurance and manager approval gates
- Routing that decides which gates apply, and in what order
- An append-only approval audit trail and history event stream

Persistence, authentication and HTTP are collaborators supplied by the host
application (see ``formflow.storage``).

Basic usage:
    >>> from formflow import InMemoryStorage, WorkflowEngine
    >>> engine = WorkflowEngine(InMemoryStorage())
"""

import logging

__version__ = "0.1.0"

# Version info
VERSION = (0, 1, 0)

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Core exports
from formflow.engine import WorkflowEngine
from formflow.storage import InMemoryStorage, Storage

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "WorkflowEngine",
    "Storage",
    "InMemoryStorage",
]
