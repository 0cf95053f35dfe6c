"""Command line interface for reportbot."""
