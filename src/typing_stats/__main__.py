#!/usr/bin/env python3
"""
Main entry point for the Typing Stats module.
This allows running the module with: python -m typing_stats
"""

from .core import main

if __name__ == "__main__":
    main()
