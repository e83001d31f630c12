"""Command-line interface for adrotator."""
