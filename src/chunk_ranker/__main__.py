"""
Entry point for running chunk_ranker as a module.

    python -m chunk_ranker parse '"exact phrase" -draft'
"""

import sys

from chunk_ranker.cli import main

if __name__ == "__main__":
    sys.exit(main())
