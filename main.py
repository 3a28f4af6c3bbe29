#!/usr/bin/env python3
"""Main entry point for the task graph engine."""
from taskgraph.cli import main

if __name__ == "__main__":
    main()
