"""
                Order Fulfillment Engine

Tracks restaurant orders from placement through preparation to completion,
routes line items to the kitchen and bar, and keeps every display in step
through polling with optimistic updates.
"""

__version__ = "1.0.0"
