"""Authentication module: users and bearer-token validation."""
