"""Static signature tables."""
