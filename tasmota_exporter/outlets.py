from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outlet:
    name: str
    address: str


def parse_outlets(s: str) -> List[Outlet]:
    """Parse ``name:address`` pairs separated by commas.

    Malformed entries are dropped with a warning; order and duplicates are kept.
    """
    out: List[Outlet] = []
    for entry in s.split(","):
        entry = entry.strip()
        if not entry:
            continue

        parts = entry.split(":")
        if len(parts) != 2:
            logger.warning("invalid outlet configuration config=%r expected_format=name:address", entry)
            continue

        name = parts[0].strip()
        address = parts[1].strip()
        if not name or not address:
            logger.warning("invalid outlet configuration config=%r reason=name and address cannot be empty", entry)
            continue

        out.append(Outlet(name=name, address=address))

    return out


def outlets_from_config(value: Any) -> List[Outlet]:
    if value is None:
        return []
    if isinstance(value, str):
        return parse_outlets(value)
    if not isinstance(value, list):
        raise ValueError("outlets must be a 'name:address' string or a list of {name, address} objects")

    out: List[Outlet] = []
    for item in value:
        if not isinstance(item, dict):
            logger.warning("invalid outlet configuration config=%r expected_format={name, address}", item)
            continue
        name = str(item.get("name") or "").strip()
        address = str(item.get("address") or "").strip()
        if not name or not address:
            logger.warning("invalid outlet configuration config=%r reason=name and address cannot be empty", item)
            continue
        out.append(Outlet(name=name, address=address))

    return out
