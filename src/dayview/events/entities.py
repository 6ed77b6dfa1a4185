from __future__ import annotations

import re
from typing import Any

from ..domain.models import DEFAULT_ENTITY_COLOR, OVERRIDE_FIELDS, AggregationConfig, EntitySpec, ProcessedEvent

_HEX_PATTERN = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_RGB_PATTERN = re.compile(r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*[\d.]+\s*)?\)$")


def find_entity(event: ProcessedEvent, config: AggregationConfig) -> EntitySpec | None:
    if event.matched_entity is not None:
        return event.matched_entity
    for entity in config.entities:
        if entity.entity == event.entity_id:
            return entity
    return None


def convert_to_rgba(color: str, opacity: float) -> str:
    """Apply ``opacity`` (0-100) to a hex or rgb() color; other values pass through."""
    alpha = max(0.0, min(100.0, opacity)) / 100
    text = color.strip()

    hex_match = _HEX_PATTERN.match(text)
    if hex_match:
        digits = hex_match.group(1)
        if len(digits) == 3:
            digits = "".join(char * 2 for char in digits)
        red, green, blue = (int(digits[index : index + 2], 16) for index in (0, 2, 4))
        return f"rgba({red}, {green}, {blue}, {alpha:g})"

    rgb_match = _RGB_PATTERN.match(text)
    if rgb_match:
        red, green, blue = rgb_match.groups()
        return f"rgba({red}, {green}, {blue}, {alpha:g})"

    return color


def entity_color(event: ProcessedEvent, config: AggregationConfig) -> str:
    entity = find_entity(event, config)
    if entity is None:
        return DEFAULT_ENTITY_COLOR
    return entity.color or DEFAULT_ENTITY_COLOR


def entity_accent_color(
    event: ProcessedEvent,
    config: AggregationConfig,
    opacity: float | None = None,
) -> str:
    entity = find_entity(event, config)
    base_color = (entity.accent_color if entity is not None else None) or config.accent_color
    if not opacity:
        return base_color
    return convert_to_rgba(base_color, opacity)


def entity_label(event: ProcessedEvent, config: AggregationConfig) -> str | None:
    entity = find_entity(event, config)
    return entity.label if entity is not None else None


def entity_setting(event: ProcessedEvent, name: str, config: AggregationConfig) -> Any:
    """Per-entity override of ``name`` when set, else the global setting."""
    if name not in OVERRIDE_FIELDS:
        raise KeyError(f"Unknown entity setting: {name}")
    entity = find_entity(event, config)
    if entity is not None:
        value = getattr(entity.overrides, name)
        if value is not None:
            return value
    return getattr(config, name)
