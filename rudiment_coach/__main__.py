"""
Entry point for running Rudiment Coach as a module.

Usage:
    python -m rudiment_coach today
    python -m rudiment_coach drill single-paradiddle --bpm 90
    python -m rudiment_coach --help
"""
from .cli import main

if __name__ == "__main__":
    main()
