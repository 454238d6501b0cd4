"""Utilities for TSCH network simulation: random numbers and statistics."""
