"""Value objects for the Chat Relay service.

Immutable values with no identity. Each value object validates its own
constraints in ``__post_init__`` and raises ValueError on violation.

Key Value Objects:
    - ModelIdentity: ``provider/model[:modifier]`` upstream model identifier
    - ApiKey: Caller-supplied upstream bearer key
"""

from __future__ import annotations

import re
from dataclasses import dataclass

API_KEY_MIN_LENGTH = 20
"""Minimum accepted API key length (inclusive)."""

API_KEY_PATTERN = re.compile(r"^sk-[a-zA-Z0-9_-]+$")
"""Accepted API key shape."""

ONLINE_MODIFIER = "online"
"""Model modifier that enables upstream web search."""


@dataclass(slots=True, frozen=True)
class ModelIdentity:
    """Upstream model identifier in ``provider/model[:modifier]`` form.

    The raw string is the correlation key for every event belonging to one
    backend in a multi-model run, so ``str(identity)`` always returns it
    unchanged.

    Attributes:
        value: Full identifier, e.g. ``"openai/gpt-4o:online"``.

    Raises:
        ValueError: If the identifier is empty or whitespace-only.
    """

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError("Model identifier cannot be empty")

    @property
    def base_id(self) -> str:
        """Identifier with any ``:modifier`` suffix removed."""
        return self.value.split(":", 1)[0]

    @property
    def provider(self) -> str:
        """Provider prefix, or an empty string when the id has none."""
        base = self.base_id
        return base.split("/", 1)[0] if "/" in base else ""

    @property
    def name(self) -> str:
        """Model part of the identifier without provider or modifier."""
        return self.base_id.split("/", 1)[-1]

    @property
    def modifier(self) -> str | None:
        """Suffix after ``:``, or None."""
        _, sep, modifier = self.value.partition(":")
        return modifier if sep else None

    @property
    def is_online(self) -> bool:
        """True when the ``:online`` web-search modifier is set."""
        return self.modifier == ONLINE_MODIFIER

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True, frozen=True)
class ApiKey:
    """Upstream bearer key supplied by the caller on every request.

    Attributes:
        value: Key string. At least API_KEY_MIN_LENGTH characters and
            matching API_KEY_PATTERN.

    Raises:
        ValueError: If the key does not have the expected shape.
    """

    value: str

    def __post_init__(self) -> None:
        if len(self.value) < API_KEY_MIN_LENGTH or not API_KEY_PATTERN.match(self.value):
            raise ValueError("Invalid API key format")

    def __repr__(self) -> str:
        return f"ApiKey('{self.value[:6]}...')"

    def __str__(self) -> str:
        return self.value


__all__ = ["API_KEY_MIN_LENGTH", "API_KEY_PATTERN", "ApiKey", "ModelIdentity"]
