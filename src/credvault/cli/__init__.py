"""Command-line interface for credvault."""
