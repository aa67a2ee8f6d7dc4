"""Core configuration, logging and lifecycle."""
