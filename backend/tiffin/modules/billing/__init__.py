"""Billing module.

Plans, subscriptions, upgrade pricing with pro-rata credit, renewals and
the cancellation fee schedule for orders.
"""
