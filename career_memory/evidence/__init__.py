"""Evidence Attacher."""
