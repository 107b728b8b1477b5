"""Test suite for the formflow workflow engine.

This package contains tests for:
- Definition parsing (schema checks, conditional rules, tab ordering)
- Field visibility and editability resolution
- Tab validation (required, regex, bounds, booking date)
- Approval routing and the submission state machine
- Tab navigation and progressive save
- History events and the in-memory store
- End-to-end engine scenarios (submit, approve, reject, resubmit)
"""
