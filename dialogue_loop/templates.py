"""Handlebars rendering for on-screen info lines."""

from collections.abc import Callable
from typing import Any

import pybars

from dialogue_loop.models import Scenario

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class TemplateError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_template(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise TemplateError(f"Template error: {e}") from e


def scenario_context(scenario: Scenario) -> dict[str, Any]:
    return {
        "id": scenario.id,
        "topic": scenario.topic,
        "username": scenario.username,
        "lines": len(scenario.cues),
        "speakers": sorted({c.speaker for c in scenario.cues}),
    }
