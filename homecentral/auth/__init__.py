"""Authentication: Google OAuth, sessions and request dependencies."""
