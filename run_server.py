#!/usr/bin/env python3
"""
RevLedger API Server Launcher
"""

import os
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from cli import main  # noqa: E402

if __name__ == '__main__':
    main(["serve", *sys.argv[1:]])
