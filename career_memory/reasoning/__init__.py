"""Reasoning collaborator boundary."""
