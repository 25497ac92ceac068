"""REST API for trailer availability and reservations."""
