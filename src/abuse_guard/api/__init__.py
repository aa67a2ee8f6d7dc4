"""Host-application integration helpers."""
