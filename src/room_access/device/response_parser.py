"""Parsers for the line-oriented text bodies returned by Dahua CGI endpoints.

Two shapes occur:

    deviceType=ASI7213X                      (plain key=value)
    records[0].CardNo=0A1B2C3D               (indexed prefix[idx].field=value)

Lines that match neither shape are ignored.
"""

import re
from typing import Any, Dict, List

_INDEXED_RE = re.compile(r"(\w+)\[(\d+)\]\.(.+)")
_OK_RE = re.compile(r"\bOK\b")


def _lines(text: str):
    for line in (text or "").splitlines():
        line = line.strip()
        if line and "=" in line:
            key, _, value = line.partition("=")
            yield key.strip(), value.strip()


def parse_key_values(text: str) -> Dict[str, str]:
    """Plain ``key=value`` lines into a dict (values may contain '=')"""
    return {key: value for key, value in _lines(text) if key}


def parse_indexed(text: str, prefix: str) -> List[Dict[str, str]]:
    """``prefix[idx].field=value`` lines into a list ordered by index"""
    pattern = re.compile(rf"^{re.escape(prefix)}\[(\d+)\]\.(.+)$")
    items: Dict[int, Dict[str, str]] = {}

    for key, value in _lines(text):
        match = pattern.match(key)
        if match:
            index = int(match.group(1))
            items.setdefault(index, {})[match.group(2)] = value

    return [items[index] for index in sorted(items) if items[index]]


def parse_config(text: str) -> Dict[str, Any]:
    """getConfig output into nested sections.

    ``table.AccessControl[0].DoorHoldTime=5`` becomes
    ``{"AccessControl": [{"DoorHoldTime": "5"}]}``; keys with no index stay flat.
    """
    config: Dict[str, Any] = {}
    sections: Dict[str, Dict[int, Dict[str, str]]] = {}

    for key, value in _lines(text):
        match = _INDEXED_RE.search(key)
        if match:
            section, index, field = match.group(1), int(match.group(2)), match.group(3)
            sections.setdefault(section, {}).setdefault(index, {})[field] = value
        else:
            config[key] = value

    for section, entries in sections.items():
        config[section] = [entries[index] for index in sorted(entries)]

    return config


def has_success_marker(text: str) -> bool:
    """Command endpoints answer ``OK`` (or a body mentioning success)"""
    body = (text or "").strip()
    return bool(_OK_RE.search(body)) or "success" in body.lower()
