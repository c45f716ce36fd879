"""Helpdesk knowledge-base service: PDF ingestion and grounded answers."""

__version__ = "0.1.0"
