"""Parser for the ``name=value{viewport|viewport}`` directive syntax."""

from __future__ import annotations

import re
from typing import Dict, Mapping, TypeVar

from .errors import ConfigError, MalformedDirectiveError
from .models import DEFAULT_KEY

OPTION_PATTERN = re.compile(r"^([^\s{]+)(?:\{([\w|]+)\})?$")

T = TypeVar("T")


def parse_properties(content: str) -> Dict[str, Dict[str, str]]:
    """Parse ``;``-separated clauses into ``{name: {viewport: raw value}}``.

    A value without a viewport list is stored under ``__default``.
    """
    properties: Dict[str, Dict[str, str]] = {}

    for clause in content.split(";"):
        name, separator, options = clause.partition("=")
        if not separator or not name:
            raise MalformedDirectiveError(f"Property {clause!r} is malformed")

        viewports_map: Dict[str, str] = {}
        for option in options.split(","):
            match = OPTION_PATTERN.match(option)
            if match is None:
                raise MalformedDirectiveError(f"Option {option!r} is malformed")

            value, viewports = match.groups()
            if viewports is None:
                viewports_map[DEFAULT_KEY] = value
            else:
                for viewport in viewports.split("|"):
                    viewports_map[viewport] = value

        properties[name] = viewports_map

    return properties


def resolve_viewport_alias(name: str, aliases: Mapping[str, str]) -> str:
    return aliases.get(name, name)


def resolve_viewport_aliases(
    viewport_map: Mapping[str, T],
    aliases: Mapping[str, str],
) -> Dict[str, T]:
    """Rename aliased viewport keys to their canonical form."""
    return {
        resolve_viewport_alias(name, aliases): value
        for name, value in viewport_map.items()
    }


def guard_against_reserved_alias(aliases: Mapping[str, str]) -> None:
    if DEFAULT_KEY in aliases:
        raise ConfigError(
            f'"{DEFAULT_KEY}" alias is reserved for internal usage, use another name'
        )
