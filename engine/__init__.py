"""
Convenience package shim.

The engine lives under `app/engine` next to the Qt host, which is run via
`python app/main.py` with `app/` on `sys.path`. Tools started from the repo root
(e.g. `python -m engine.cli`) don't have `app/` on the path, so this shim extends
the package search path to include `app/engine`.
"""

from __future__ import annotations

import os

_HERE = os.path.abspath(os.path.dirname(__file__))
_APP_ENGINE = os.path.normpath(os.path.join(_HERE, "..", "app", "engine"))

if os.path.isdir(_APP_ENGINE):
    __path__.append(_APP_ENGINE)  # type: ignore[name-defined]
