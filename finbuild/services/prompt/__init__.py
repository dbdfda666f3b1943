"""Prompt service package -- template store, rendering, telemetry and invocation."""
