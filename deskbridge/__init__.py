"""Deskbridge: helpdesk ticket ingestion, export and sync engine."""

__version__ = "0.1.0"
