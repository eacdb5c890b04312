"""
Entry point for module execution (``python -m runtime_deflect``).

This module delegates execution to the CLI handler in ``runtime_deflect.cli.__main__``.
"""

import sys
from runtime_deflect.cli.__main__ import main

if __name__ == "__main__":
  sys.exit(main())
