#!/usr/bin/env python3
"""
CLI entry point for adrotator.cli module.

This allows running: python -m adrotator.cli
"""

from .main import cli

if __name__ == "__main__":
    cli()
