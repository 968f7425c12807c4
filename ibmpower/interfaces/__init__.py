"""
Interface definitions for ibmpower.

Available Interfaces:
    - LparProviderInterface: Contract for platform partition probes
    - Unavailable: Typed result for a source that could not be read
    - is_unavailable: Test for an Unavailable result
"""

from ibmpower.interfaces.provider import (
    LparProviderInterface,
    Unavailable,
    is_unavailable,
)

__all__ = [
    'LparProviderInterface',
    'Unavailable',
    'is_unavailable',
]
