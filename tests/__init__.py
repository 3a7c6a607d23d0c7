"""
Reservation Engine Tests

Running Tests:
    # Install with test extras
    pip install -e ".[test]"

    # Run all tests
    pytest tests -v

    # Run one module
    pytest tests/unit/test_engine.py -v

Test Coverage:
    - Step state machine and draft merging
    - Callback grammar and prompt keyboards
    - Availability resolution and capacity validation
    - Confirmation tokens and the re-validating commit
    - End-to-end dialogue scenarios (new booking, conflicts, modify)
    - Redis session store, SQL repository (SQLite), webhook notifier
    - HTTP routes
"""
