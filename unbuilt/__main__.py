"""Allow ``python -m unbuilt <command>``, e.g. ``python -m unbuilt serve``."""

from unbuilt.cli.main import main

if __name__ == "__main__":
    main()
