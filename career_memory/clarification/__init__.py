"""Confidence & Clarification Queue."""
