"""Root pytest configuration for trackloom.

Puts ``src`` on ``sys.path`` so the suite runs from a plain checkout, and
keeps the rootdir importable so tests can share ``tests.helpers``.
"""

import sys
from pathlib import Path

root_dir = Path(__file__).parent

for path in (str(root_dir / "src"), str(root_dir)):
    if path not in sys.path:
        sys.path.insert(0, path)
