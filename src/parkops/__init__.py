"""
ParkOps - operator access and shift cash custody for parking operations

Answers two questions for a parking-operations platform: may this operator
work this street right now, and how much cash should be in this drawer.
Both answers are recomputable from an append-only event log.

Fun fact: the first parking meter, installed in Oklahoma City in 1935,
took nickels. Someone still had to empty it and count.
"""

from parkops.ops import ParkOps

__version__ = "0.1.0"
__all__ = ["ParkOps", "__version__"]
