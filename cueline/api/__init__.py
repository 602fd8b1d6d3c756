"""Model-facing API layer: Gemini client, prompts, and resolver dataclasses."""
