"""Route blueprints for the auth server."""
