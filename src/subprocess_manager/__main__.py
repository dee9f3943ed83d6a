"""Subprocess Manager entry point.

Supports: python -m subprocess_manager
"""

from .app import main

if __name__ == "__main__":
    main()
