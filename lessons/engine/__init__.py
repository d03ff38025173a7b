"""Lesson progression engine: recall scheduling, readiness gate, controller."""
