"""Persistence services for customer analytics."""
