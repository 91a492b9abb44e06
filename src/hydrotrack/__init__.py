"""Hydrotrack - construction test package lifecycle service.

Tracks pressure-test packages of piping components from assignment through
certificate finalization and the seven-stage acceptance workflow that ends
with client hand-over.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
