"""Role registry and role sources."""
