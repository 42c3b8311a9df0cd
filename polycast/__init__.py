"""
Polycast
========
Match-outcome forecasting engine with settlement scoring and a
closed-loop calibration feedback edge.
"""

__version__ = "3.0.0"
