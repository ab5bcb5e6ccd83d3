"""Entry Classifier."""
