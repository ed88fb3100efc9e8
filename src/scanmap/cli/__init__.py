"""Command-line interface for scanmap."""
