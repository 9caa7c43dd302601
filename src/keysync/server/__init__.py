"""Server side of keysync: the authoritative action catalog and channel."""
