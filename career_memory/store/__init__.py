"""Entry repository."""
