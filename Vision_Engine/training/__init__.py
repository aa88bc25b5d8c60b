"""Command-line sample recording and training."""
