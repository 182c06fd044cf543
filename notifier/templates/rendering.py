"""Rendering strategies for template bundles.

Templates use ``{{variable}}`` placeholders resolved by exact key match and a
restricted conditional block ``{{#if variable}}...{{/if}}`` that keeps its
content only when the named variable is truthy. Unresolved placeholders are
left verbatim in the output.

Two interchangeable strategies implement these semantics:
- JinjaRenderStrategy: translates the tags to Jinja2; each placeholder becomes
  an exact-key lookup that falls back to its original token text
- PlaceholderRenderStrategy: plain regex substitution
"""

import html
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

from jinja2 import Environment, TemplateError

from notifier.domain.models import TemplateBundle

from .models import RenderedContent, TemplateRenderError

logger = logging.getLogger(__name__)

_IF_OPEN = re.compile(r"\{\{#if\s+([A-Za-z_]\w*)\s*\}\}")
_IF_CLOSE = re.compile(r"\{\{/if\}\}")
_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][\w.]*)\s*\}\}")

# Template global used by translated placeholders
_LOOKUP = "__placeholder__"


class RenderStrategy(ABC):
    """Renders all three artifacts of a bundle with one set of variables."""

    def render(self, bundle: TemplateBundle, variables: Mapping[str, Any]) -> RenderedContent:
        """Render subject, HTML and text bodies.

        Raises:
            TemplateRenderError: If an artifact has malformed placeholder syntax
        """
        context = dict(variables)
        subject = self.render_string(bundle.subject, context, escape_html=False)
        html_body = self.render_string(bundle.html, context, escape_html=True)
        text_body = self.render_string(bundle.text, context, escape_html=False)

        logger.debug(f"Rendered templates for type: {bundle.notification_type.value}")

        return RenderedContent(
            subject=subject.strip().replace("\n", " "),
            html=html_body,
            text=text_body,
        )

    @abstractmethod
    def render_string(self, source: str, variables: Dict[str, Any], escape_html: bool) -> str:
        """Render one template string."""


class JinjaRenderStrategy(RenderStrategy):
    """Renders templates with Jinja2."""

    def __init__(self):
        self.text_env = Environment(
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.html_env = Environment(
            autoescape=True,  # Auto-escape HTML for safety
            keep_trailing_newline=True,
        )

    def render_string(self, source: str, variables: Dict[str, Any], escape_html: bool) -> str:
        env = self.html_env if escape_html else self.text_env
        tokens: List[str] = []

        def protect(match: "re.Match[str]") -> str:
            tokens.append(match.group(0))
            return "{{ %s(%r, %d) }}" % (_LOOKUP, match.group(1), len(tokens) - 1)

        def lookup(key: str, index: int) -> Any:
            value = variables.get(key)
            return tokens[index] if value is None else value

        translated = _IF_CLOSE.sub("{% endif %}", _IF_OPEN.sub(r"{% if \1 %}", source))
        translated = _PLACEHOLDER.sub(protect, translated)
        try:
            return env.from_string(translated, globals={_LOOKUP: lookup}).render(variables)
        except TemplateError as e:
            error_msg = f"Template rendering failed: {e}"
            logger.error(error_msg)
            raise TemplateRenderError(error_msg) from e


class PlaceholderRenderStrategy(RenderStrategy):
    """Renders templates by regex string substitution."""

    # Innermost conditional first: the body may not contain another opening tag.
    _CONDITIONAL = re.compile(
        r"\{\{#if\s+([A-Za-z_]\w*)\s*\}\}((?:(?!\{\{#if).)*?)\{\{/if\}\}",
        re.DOTALL,
    )
    _STRAY_TAG = re.compile(r"\{\{\s*(?:#if\b[^}]*|/if)\s*\}\}")

    def render_string(self, source: str, variables: Dict[str, Any], escape_html: bool) -> str:
        resolved = source
        while True:
            resolved, count = self._CONDITIONAL.subn(
                lambda m: m.group(2) if variables.get(m.group(1)) else "", resolved
            )
            if count == 0:
                break

        stray = self._STRAY_TAG.search(resolved)
        if stray:
            error_msg = f"Template rendering failed: unbalanced block tag {stray.group(0)!r}"
            logger.error(error_msg)
            raise TemplateRenderError(error_msg)

        def substitute(match: "re.Match[str]") -> str:
            value = variables.get(match.group(1))
            if value is None:
                return match.group(0)
            text = str(value)
            return html.escape(text) if escape_html else text

        return _PLACEHOLDER.sub(substitute, resolved)


RENDER_STRATEGIES = {
    "jinja": JinjaRenderStrategy,
    "placeholder": PlaceholderRenderStrategy,
}


def get_render_strategy(name: str) -> RenderStrategy:
    """Build a render strategy by configuration name (jinja or placeholder)."""
    try:
        return RENDER_STRATEGIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown render engine: {name}. Must be one of: {', '.join(RENDER_STRATEGIES)}"
        ) from None
