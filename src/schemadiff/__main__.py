"""Entry point for 'python -m schemadiff' command."""

from schemadiff.cli import main

if __name__ == "__main__":
    main()
