"""Depth-of-market analytics package.

Lightweight implementations of the order-book signals (imbalance, pressure,
confidence, absorption) and the sources, writer and loop around them.
"""
from .analyzer import OrderFlowAnalyzer
from .book_source import BookSource, InMemoryBookSource

__all__ = ["OrderFlowAnalyzer", "BookSource", "InMemoryBookSource"]
