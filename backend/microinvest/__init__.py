"""MicroInvest: micro-investing simulation backend."""

__version__ = "0.1.0"
