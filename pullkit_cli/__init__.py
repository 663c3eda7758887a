"""Command line interface for pullkit."""
