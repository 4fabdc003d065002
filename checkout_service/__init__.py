"""Checkout coordination service: carts, coupons, inventory and orders."""

__version__ = "1.0.0"
