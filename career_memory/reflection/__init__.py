"""Weekly Reflection Engine."""
