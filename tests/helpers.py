"""Shared constants for the test suite."""

PASSWORD = "Correct-Horse-9"
