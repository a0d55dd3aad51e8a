"""
Outer interface.

This module contains what a server in front of the library talks to:
- WcfBridge (allow-listed method calls and message forwarding, with error envelopes)
"""

from .bridge import WcfBridge, to_jsonable

__all__ = [
    "WcfBridge",
    "to_jsonable",
]
