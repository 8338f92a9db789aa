"""Logging and metrics for KubePulse."""
