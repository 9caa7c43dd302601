"""Server-side control: authorization, command dispatch and the channel."""
