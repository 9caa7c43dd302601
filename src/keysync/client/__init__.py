"""Client side of keysync: live bindings mirrored from the server catalog."""
