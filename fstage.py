#!/usr/bin/env python3
"""filestage — run with: python3 fstage.py"""

import sys
from pathlib import Path

# Make the project root importable without installing the package
sys.path.insert(0, str(Path(__file__).parent))

from filestage.cli import main

if __name__ == "__main__":
    main()
