"""
MedCare Dose Engine Test Suite

- test_services/: schedule and adherence services
- test_actions/: sweeper, dispatcher, escalation, reminders, reports, trigger
- test_tools/: time windows and channel adapters
- test_api/: FastAPI routes
- conftest.py: shared fixtures
"""
