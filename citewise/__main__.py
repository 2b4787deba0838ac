"""
Allow running Citewise as a module: ``python -m citewise``.

This delegates to the CLI entry point so that both
``citewise`` (console script) and ``python -m citewise``
behave identically.
"""

from citewise.cli import main

if __name__ == "__main__":
    main()
