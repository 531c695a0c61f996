"""Command-line interface for talefam."""
