"""Trickplay preview generation and serving."""
