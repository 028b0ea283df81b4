"""Order module.

One-off meal and event orders plus the audit orders written for every
subscription purchase and upgrade.
"""
