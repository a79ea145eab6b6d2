"""Histofy: paint a contribution calendar and deploy it as dated commits."""

__version__ = "1.0.0"
