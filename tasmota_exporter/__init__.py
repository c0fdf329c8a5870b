from __future__ import annotations

EXPORTER_VERSION = "1.0.0"

__version__ = EXPORTER_VERSION
