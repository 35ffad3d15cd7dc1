"""Main entry point for stashreview."""

from stashreview.cli import main

if __name__ == "__main__":
    main()
