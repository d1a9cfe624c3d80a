"""
Prep costing module.

Keeps derived batch and per-unit costs of intermediate preparations
consistent with the prices of the ingredients they are made from.
"""
