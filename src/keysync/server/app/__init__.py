"""Process entry point for the keysync server."""
