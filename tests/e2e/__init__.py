"""
End-to-end tests for complete distributed runs.

These tests drive the coordinator, worker pool and pytest plugin through
whole runs against the in-memory platform: setup once, parallel workers,
barrier, teardown once.
"""
