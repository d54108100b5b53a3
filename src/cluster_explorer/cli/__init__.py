"""Command line interface for kdx."""
