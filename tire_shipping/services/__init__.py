"""Shipping services: carrier clients, rates, shipments, tracking, settings."""
