"""Career memory agent."""
