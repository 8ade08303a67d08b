"""Compartmentalized feature modules."""
