"""Recommendation module for InvRec.

This module contains catalog and payload parsing, sales metric aggregation,
the variant scoring engine, the product-level recommendation builder and the
generation job that persists their output.
"""
