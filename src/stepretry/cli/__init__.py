"""Command-line interface for stepretry."""
