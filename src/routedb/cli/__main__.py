"""Main entry point for routedb CLI when run as a module."""

from routedb.cli.main import main

if __name__ == "__main__":  # pragma: no cover
    main()
