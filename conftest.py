# SPDX-License-Identifier: MIT
"""Pytest environment setup.

Ensures the repository root is importable so tests resolve the in-tree
``core`` and ``cli`` packages without installing them.
"""

from __future__ import annotations

import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
