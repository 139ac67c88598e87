#!/usr/bin/env python3
"""
DIVSTAB Command Line Interface Entry Point
==========================================

This module provides the entry point for running DIVSTAB as a module:
    python -m divstab

It delegates to the main CLI functionality in cli.py
"""

from .cli import main

if __name__ == "__main__":
    main()
