"""Command-line interface for job sharing."""
