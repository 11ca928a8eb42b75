"""Delivery route planning service."""
