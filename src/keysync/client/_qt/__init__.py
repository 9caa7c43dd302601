"""Qt host adapters for keysync bindings and main-thread scheduling."""
