"""trade-api service: users, games, trade offers and lifecycle events."""
