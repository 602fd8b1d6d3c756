"""Package entry point for ``python -m cueline``.

WHY: Users run ``python -m cueline serve`` without installing the console
script. Python's ``-m`` flag looks for ``__main__.py`` inside the package.

HOW: Delegates to the CLI's main() function.
"""

from cueline.cli import main

if __name__ == "__main__":
    main()
