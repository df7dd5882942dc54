"""
Leasing Kernel.

Shared foundation for the leasing lifecycle engine: typed exceptions,
structured logging, the injectable clock, workflow value types, actor and
money values, and the SQLAlchemy base/engine/immutability layer.
"""

__version__ = "0.1.0"
