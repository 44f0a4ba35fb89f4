"""Retrieval, maintenance and extraction services."""
