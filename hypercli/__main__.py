"""Main entry point when executing hypercli as a package.

This allows running the package using python -m hypercli.
"""

from hypercli.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
