"""Document import from Google Docs and Google Slides."""
