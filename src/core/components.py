"""
Components
==========

A component turns input properties into markup plus a stylesheet. The render
pipeline only depends on the ``Component`` protocol; ``TemplateComponent``
is the Jinja2-backed implementation used by the bundled cards.
"""

from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

import jinja2

from src.models.schemas import RenderedComponent


@runtime_checkable
class Component(Protocol):
    """Anything that renders properties to markup."""

    def render(self, props: Mapping[str, Any]) -> RenderedComponent:
        ...


class TemplateComponent:
    """Component rendered from a Jinja2 template string."""

    def __init__(
        self,
        template: str,
        css: str = "",
        defaults: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
    ):
        self.env = jinja2.Environment(
            autoescape=True,
            undefined=jinja2.StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.template = self.env.from_string(template)
        self.css = css
        self.defaults = defaults or {}
        self.name = name or "component"

    def render(self, props: Mapping[str, Any]) -> RenderedComponent:
        context = {**self.defaults, **{k: v for k, v in props.items() if v is not None}}
        return RenderedComponent(html=self.template.render(**context), css=self.css)

    def __repr__(self) -> str:
        return f"TemplateComponent({self.name!r})"
