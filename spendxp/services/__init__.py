"""External collaborators of the engine: storage, notifications, credentials."""
