"""
Pickup Checkout
===============

Order finalization and pickup-window capacity reservation for the storefront
backend. The service modules under ``pickup_checkout.services`` hold every
business rule; ``pickup_checkout.main`` exposes them over HTTP.
"""
