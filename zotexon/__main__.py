"""Allow running zotexon as ``python -m zotexon``."""

from .cli import main

if __name__ == "__main__":
    main()
