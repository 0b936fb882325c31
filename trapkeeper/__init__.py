"""Trapkeeper - Drosera trap and operator provisioning toolkit."""

__version__ = "0.1.0"
