"""
Entry point for running HLPE as a module.

Usage:
    python -m src.hlpe analyze snapshot.json
    python -m src.hlpe config
    python -m src.hlpe --help
"""
from .cli import main

if __name__ == "__main__":
    main()
