"""Strict jinja2 rendering for remote URL templates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError, meta

if TYPE_CHECKING:
    from collections.abc import Collection

    from gate_orchestrator.domain.models import Project

ORIGIN_URL_VARIABLES: Final[frozenset[str]] = frozenset({"project", "short_name"})
QUEUE_FETCH_URL_VARIABLES: Final[frozenset[str]] = frozenset({"project", "short_name", "url"})

_ENVIRONMENT: Final[Environment] = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=False,
)


class UrlTemplateError(ValueError):
    """Raised when a URL template is malformed or references unknown variables."""


def template_variables(source: str) -> tuple[str, ...]:
    """Return the sorted variable names referenced by ``source``."""

    try:
        parsed = _ENVIRONMENT.parse(source)
    except TemplateSyntaxError as exc:
        raise UrlTemplateError(f"invalid URL template {source!r}: {exc.message}") from exc
    return tuple(sorted(meta.find_undeclared_variables(parsed)))


class UrlTemplate:
    """A validated URL template bound to a whitelist of variables."""

    def __init__(self, source: str, *, allowed_variables: Collection[str]) -> None:
        if not source.strip():
            raise UrlTemplateError("URL template must not be empty")
        unknown = sorted(set(template_variables(source)) - set(allowed_variables))
        if unknown:
            raise UrlTemplateError(
                f"URL template {source!r} uses unknown variables: {', '.join(unknown)}"
            )
        self.source = source
        self._template = _ENVIRONMENT.from_string(source)

    def render(self, project: Project, **extra: str) -> str:
        try:
            rendered = self._template.render(
                project=project.name, short_name=project.short_name, **extra
            )
        except UndefinedError as exc:
            raise UrlTemplateError(f"cannot render {self.source!r}: {exc.message}") from exc
        return rendered.strip()

    def __repr__(self) -> str:
        return f"UrlTemplate({self.source!r})"


__all__ = [
    "ORIGIN_URL_VARIABLES",
    "QUEUE_FETCH_URL_VARIABLES",
    "UrlTemplate",
    "UrlTemplateError",
    "template_variables",
]
