"""Logging, tracing and email body helpers."""
