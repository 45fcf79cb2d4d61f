"""Command-line demonstration client for the Google Calendar API."""

__version__ = "0.1.0"
