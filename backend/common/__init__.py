"""Shared helpers used across apps: geo math, settings access and the fallback notifier."""
