"""Pytest configuration.

The packages can be used from a checkout without an editable install. When
`pytest` runs without the repository root on `sys.path`, imports like
`import klines_core` break; this file puts the root back on the path.
"""

from __future__ import annotations

import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
