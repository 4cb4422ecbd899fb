"""Main entry point when executing codelens as a package.

This allows running the package using python -m codelens.
"""

from codelens.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
