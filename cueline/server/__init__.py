"""FastAPI Control API for a Cue Line session."""
