"""Session core: script model, playback clock, cues, command log, and session."""
