"""Delivery module.

Delivery pauses and the per-day dispatch manifest.
"""
