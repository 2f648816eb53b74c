"""
Style document helpers: variable resolution, parsing and editor config.

Style documents follow the OpenLayers flat-style shape. Values may reference
entries of a top-level ``variables`` mapping with ``["var", "<key>"]``
expressions; vector renderers need those burned in as literal values.

Known limitation: string variable values are substituted verbatim. The
structural walk below never breaks the document, but a string value is not
sanitised in any way before it reaches the renderer.
"""

import copy
import json
import logging
from numbers import Number
from typing import Any, Dict, Mapping, Optional, Union

from .exceptions import StyleError

logger = logging.getLogger(__name__)

StyleDocument = Dict[str, Any]

DEFAULT_STYLE: StyleDocument = {
    "fill-color": "rgba(255,255,255,0.4)",
    "stroke-color": "#3399CC",
    "stroke-width": 1.25,
}


def default_style() -> StyleDocument:
    """Fresh copy of the style applied to custom data layers."""
    return copy.deepcopy(DEFAULT_STYLE)


def _is_placeholder(node: Any) -> bool:
    return (
        isinstance(node, list)
        and len(node) == 2
        and node[0] == "var"
        and isinstance(node[1], str)
    )


def _as_text(value: Any) -> str:
    # Text form the renderer gives non-numeric values: arrays join their
    # items with commas and empty items become ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else _as_text(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _variable_value(value: Any) -> Any:
    # Renderers expect numbers as numbers; everything else becomes a string
    if isinstance(value, Number) and not isinstance(value, bool):
        return value
    return _as_text(value)


def _substitute(node: Any, variables: Mapping[str, Any]) -> Any:
    if _is_placeholder(node) and node[1] in variables:
        return _variable_value(variables[node[1]])
    if isinstance(node, dict):
        return {key: _substitute(value, variables) for key, value in node.items()}
    if isinstance(node, list):
        return [_substitute(item, variables) for item in node]
    return node


def resolve_style_variables(style: StyleDocument) -> StyleDocument:
    """
    Replace ``["var", key]`` expressions with the values from ``variables``.

    Documents without a ``variables`` entry are returned unchanged (same
    object). Otherwise a new document is returned; the ``variables`` entry
    itself is kept. Placeholders naming undefined variables are left as-is.

    Args:
        style: Style document

    Returns:
        Style document with variables burned in
    """
    if not isinstance(style, dict) or "variables" not in style:
        return style

    variables = style.get("variables") or {}
    if not isinstance(variables, dict):
        logger.warning(f"Ignoring non-mapping style variables: {variables!r}")
        return style

    resolved = {
        key: value if key == "variables" else _substitute(value, variables)
        for key, value in style.items()
    }
    logger.debug(f"Resolved {len(variables)} style variable(s)")
    return resolved


def parse_style(style: Union[str, bytes, StyleDocument, None]) -> Optional[StyleDocument]:
    """
    Turn a style given as JSON text or a mapping into a style document.

    Args:
        style: JSON text, mapping, or None

    Returns:
        Style document, or None for empty input

    Raises:
        StyleError: If the text is not a JSON object
    """
    if style is None:
        return None
    if isinstance(style, (str, bytes)):
        if not style.strip():
            return None
        try:
            parsed = json.loads(style)
        except json.JSONDecodeError as e:
            raise StyleError(f"Style is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise StyleError(f"Style must be a JSON object, got {type(parsed).__name__}")
        return parsed
    if isinstance(style, Mapping):
        return dict(style)
    raise StyleError(f"Unsupported style type: {type(style).__name__}")


def build_layer_config(style: StyleDocument) -> Dict[str, Any]:
    """
    Build the ``layerConfig`` consumed by the style-editing UI.

    The editor needs the resolved style but still edits the raw variable
    bindings, so ``variables`` is attached to the resolved copy.
    """
    resolved = dict(resolve_style_variables(style))
    if "variables" in style:
        resolved["variables"] = style["variables"]
    return {
        "schema": style.get("jsonform", style.get("schema")),
        "style": resolved,
        "legend": style.get("legend"),
    }
