#!/usr/bin/env python3
"""
Convenience entry point for running inkslot directly.

Usage: python inkslot.py [command] [options]
"""

from inkslot.cli.app import app

if __name__ == "__main__":
    app()
