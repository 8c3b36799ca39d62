"""
Perfinper - Client Core Package

The client-side domain layer of a personal / small-business finance
tracker: transactions grouped into fiscal books, browsed through a
locally mirrored cache and reassigned between books in bulk.

DESIGN PRINCIPLES:
1. Validation happens before the network, never after
2. The display list never shows what the full list does not hold
3. Local mirror and memory are written together
4. A transaction belongs to at most one fiscal book
5. Remote stores are swappable
"""

__version__ = "1.0.0"
__author__ = "Perfinper Team"
