"""Command-line interface for Floraa."""
