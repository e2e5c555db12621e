"""Built-in CLI commands: session commands and the ``config`` group."""
