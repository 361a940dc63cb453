"""State layer.

This package is the single source of truth for subscription ids and cached
values, and for re-establishing them after the connection reopens.
"""
