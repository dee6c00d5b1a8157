"""In-memory test doubles for bot_core."""
