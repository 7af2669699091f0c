"""Bookable meeting slot computation: conflict filtering and multi-user pooling."""

__version__ = "0.1.0"
