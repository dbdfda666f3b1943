"""Chat service package -- the phase-driven conversation engine."""
