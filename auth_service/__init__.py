"""Username/password registration and login service."""
