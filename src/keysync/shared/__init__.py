"""Helpers shared by the keysync client and server."""
