"""Bricks fulfillment service: carrier sync and reverse logistics"""

__version__ = "1.0.0"
