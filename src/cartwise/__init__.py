"""
Cartwise shopping-list manager.

The package exposes the cart lifecycle and price-reconciliation engine together with the
item catalog, persistence helpers, and the HTTP/CLI surfaces built on top of them.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
