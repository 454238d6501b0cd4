"""TSCH network simulation core.

This package contains the link quality models, the topology generator, the
network container, the slot execution engine, statistics aggregation and the
interactive pacing controller of a time-slotted wireless mesh simulator.
"""

__version__ = "0.1.0"
