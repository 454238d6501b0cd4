"""Core components for TSCH network simulation.

This module contains the fundamental classes and functions for the simulation,
including the link models, Node, Link, Network, the slot engine and the
simulation lifecycle.
"""
