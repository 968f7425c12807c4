"""
IBM POWER partition metrics for gmond-style Python metric modules.
"""

__version__ = "1.0.0"
