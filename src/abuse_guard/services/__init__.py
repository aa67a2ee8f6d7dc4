"""Abuse-detection services."""
