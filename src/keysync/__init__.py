"""
keysync: server-defined actions bound to client-side input triggers.

The server owns the action catalog and authorizes every invocation; the
client mirrors the catalog into live, user-customisable bindings.
"""

__version__ = "0.1.0"
