"""
Markup to Document Tree
=======================

Converts a component's markup and stylesheet into the ``DocumentNode`` tree
the layout engine consumes. Stylesheet rules with simple selectors (tag,
class, id and their compounds) are inlined into each node's style; inline
``style`` attributes win over them.
"""

import re
from typing import Dict, List, Tuple

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from src.config.logging import get_logger
from src.models.schemas import DocumentNode, RenderedComponent

logger = get_logger(__name__)

CSS_COMMENT = re.compile(r"/\*.*?\*/", re.S)
CSS_RULE = re.compile(r"([^{}]+)\{([^{}]*)\}")
SIMPLE_SELECTOR = re.compile(r"(?P<tag>[a-zA-Z][\w-]*|\*)?(?P<rest>(?:[.#][\w-]+)*)")
SELECTOR_PART = re.compile(r"([.#])([\w-]+)")
WHITESPACE = re.compile(r"\s+")

IGNORED_TAGS = {"script", "style", "head", "title", "meta", "link"}

# Root every fragment is wrapped in
ROOT_STYLE = {
    "display": "flex",
    "flex-direction": "column",
    "width": "100%",
    "height": "100%",
}

Rule = Tuple[Tuple[int, int, int], str, Dict[str, str]]


def build_fragment(rendered: RenderedComponent) -> str:
    """Markup with the component stylesheet embedded."""
    return f"{rendered.html}<style>{rendered.css}</style>"


def parse_declarations(text: str) -> Dict[str, str]:
    """Parse ``prop: value; ...`` into a dict."""
    declarations: Dict[str, str] = {}
    for declaration in text.split(";"):
        if ":" not in declaration:
            continue
        prop, value = declaration.split(":", 1)
        prop, value = prop.strip().lower(), value.strip()
        if prop and value:
            declarations[prop] = value
    return declarations


def _specificity(selector: str) -> Tuple[int, int, int]:
    match = SIMPLE_SELECTOR.fullmatch(selector)
    if match is None:
        return (0, 0, 0)
    parts = SELECTOR_PART.findall(match.group("rest"))
    ids = sum(1 for kind, _ in parts if kind == "#")
    classes = len(parts) - ids
    tag = 1 if match.group("tag") not in (None, "*") else 0
    return (ids, classes, tag)


def parse_stylesheet(css: str) -> List[Rule]:
    """
    Parse a stylesheet into rules ordered by specificity.

    Rules whose selector is not a simple compound selector are dropped.
    """
    rules: List[Rule] = []
    for selectors, body in CSS_RULE.findall(CSS_COMMENT.sub("", css)):
        declarations = parse_declarations(body)
        for selector in selectors.split(","):
            selector = selector.strip()
            if not selector:
                continue
            if SIMPLE_SELECTOR.fullmatch(selector) is None:
                logger.debug("Skipping unsupported selector", selector=selector)
                continue
            rules.append((_specificity(selector), selector, declarations))
    # stable: equal specificity keeps source order
    rules.sort(key=lambda rule: rule[0])
    return rules


def selector_matches(selector: str, element: Tag) -> bool:
    match = SIMPLE_SELECTOR.fullmatch(selector)
    if match is None:
        return False

    tag = match.group("tag")
    if tag not in (None, "*") and tag.lower() != element.name:
        return False

    classes = element.get("class") or []
    for kind, name in SELECTOR_PART.findall(match.group("rest")):
        if kind == "." and name not in classes:
            return False
        if kind == "#" and element.get("id") != name:
            return False
    return True


def _resolve_style(element: Tag, rules: List[Rule]) -> Dict[str, str]:
    style: Dict[str, str] = {}
    for _, selector, declarations in rules:
        if selector_matches(selector, element):
            style.update(declarations)
    inline = element.get("style")
    if inline:
        style.update(parse_declarations(inline))
    return style


def _convert(element: Tag, rules: List[Rule]) -> DocumentNode:
    children: List = []
    for child in element.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            text = WHITESPACE.sub(" ", str(child))
            if text.strip():
                children.append(text)
        elif isinstance(child, Tag) and child.name not in IGNORED_TAGS:
            children.append(_convert(child, rules))

    props = {
        name: " ".join(value) if isinstance(value, list) else str(value)
        for name, value in element.attrs.items()
        if name != "style"
    }
    return DocumentNode(
        type=element.name,
        props=props,
        style=_resolve_style(element, rules),
        children=children,
    )


def to_document_tree(fragment: str) -> DocumentNode:
    """
    Parse a markup fragment into a document tree.

    Args:
        fragment: Markup, optionally containing ``<style>`` blocks

    Returns:
        A root ``div`` node wrapping every top-level node of the fragment
    """
    soup = BeautifulSoup(fragment, "html.parser")

    rules: List[Rule] = []
    for style_tag in soup.find_all("style"):
        rules.extend(parse_stylesheet(style_tag.get_text()))
    rules.sort(key=lambda rule: rule[0])

    root = _convert(soup, rules)
    return DocumentNode(type="div", style=dict(ROOT_STYLE), children=root.children)
