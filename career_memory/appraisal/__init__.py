"""Appraisal Synthesizer."""
