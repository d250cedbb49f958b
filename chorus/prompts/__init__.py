"""Jinja2 rendering of the consensus round prompt.

``consensus_round.md`` is the only template. It takes ``question`` (the
original user text), ``previous_round`` (number of the round being
quoted) and ``answers``, a list of mappings with ``leaf_id`` and
``excerpt`` keys. Undefined variables raise instead of rendering empty,
so a missing key fails the round rather than sending a half-filled
prompt to every leaf.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import BaseLoader, Environment, StrictUndefined

# Directory containing the .md prompt template files
_PROMPTS_DIR = Path(__file__).parent

_ENV = Environment(
    loader=BaseLoader(),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_prompt(template_name: str, **variables: object) -> str:
    """Render ``<template_name>.md`` with ``variables``, whitespace stripped.

    Raises:
        FileNotFoundError: No such template.
        jinja2.UndefinedError: The template uses a variable not supplied.
    """
    path = _PROMPTS_DIR / f"{template_name}.md"
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {path}")
    template = _ENV.from_string(path.read_text(encoding="utf-8"))
    return template.render(**variables).strip()
