"""Command-line actors."""
