#!/usr/bin/env python3
"""
Gemini model catalog.

Maps the small closed set of supported models to their display names, the
identifier AI Studio stores in localStorage, and the aliases accepted on
the command line. Pure lookups, no I/O.
"""

from dataclasses import dataclass, field
from enum import Enum

from errors import ValidationError


class ModelId(str, Enum):
    PRO = "gemini-2.5-pro"
    FLASH = "gemini-flash-latest"


@dataclass(frozen=True)
class ModelDescriptor:
    model: ModelId
    display_name: str
    description: str
    storage_id: str
    is_default: bool = False
    aliases: frozenset = field(default_factory=frozenset)
    # Substring used to spot the option in the dropdown when the full
    # display name is not rendered
    option_keyword: str = ""

    def __str__(self) -> str:
        return f"{self.display_name} ({self.storage_id}): {self.description}"


_CATALOG = {
    ModelId.PRO: ModelDescriptor(
        model=ModelId.PRO,
        display_name="Gemini 2.5 Pro",
        description="Advanced model for complex reasoning and multi-modal tasks",
        storage_id="models/gemini-2.5-pro",
        is_default=True,
        aliases=frozenset({"pro", "2.5", "gemini-2.5-pro", "gemini25pro", "gemini-pro", "default"}),
        option_keyword="Pro",
    ),
    ModelId.FLASH: ModelDescriptor(
        model=ModelId.FLASH,
        display_name="Gemini Flash Latest",
        description="Fast model optimized for quick responses and simple tasks",
        storage_id="models/gemini-flash-latest",
        aliases=frozenset({"flash", "latest", "gemini-flash-latest", "geminiflash", "gemini-flash"}),
        option_keyword="Flash",
    ),
}

DEFAULT_MODEL = ModelId.PRO


def describe(model: ModelId | str) -> ModelDescriptor:
    """Return the descriptor for a model. Unknown tags raise ValueError."""
    return _CATALOG[ModelId(model)]


def default_model() -> ModelDescriptor:
    return _CATALOG[DEFAULT_MODEL]


def all_models() -> list[ModelDescriptor]:
    """All descriptors in stable listing order (default first)."""
    return list(_CATALOG.values())


def supported_aliases() -> dict[str, ModelId]:
    """Every accepted alias mapped to its model, in catalog order."""
    aliases = {}
    for descriptor in _CATALOG.values():
        for alias in sorted(descriptor.aliases):
            aliases[alias] = descriptor.model
    return aliases


def parse_alias(text: str | None) -> ModelId | None:
    """Resolve a user-supplied alias, case-insensitively. None when unknown."""
    if not text or not text.strip():
        return None
    return supported_aliases().get(text.strip().lower())


def parse_alias_or_fail(text: str | None) -> ModelId:
    """Resolve an alias or raise ValidationError listing the valid choices."""
    model = parse_alias(text)
    if model is None:
        aliases = list(supported_aliases())
        raise ValidationError(
            f"Unrecognized model argument: '{text}'. "
            f"Available options: {', '.join(aliases)}",
            aliases=aliases,
        )
    return model


def find_by_storage_id(storage_id: str | None) -> ModelDescriptor | None:
    """Map an AI Studio localStorage identifier back to a descriptor."""
    if not storage_id or not storage_id.strip():
        return None
    for descriptor in _CATALOG.values():
        if descriptor.storage_id == storage_id.strip():
            return descriptor
    return None
