"""Declarative web forms service."""
