"""Snack store JSON HTTP API: products, sales, loyalty points, redemptions and reports."""

__version__ = "0.1.0"