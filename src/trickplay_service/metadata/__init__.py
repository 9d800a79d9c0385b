"""Media file probing."""
