from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from ..field_registry import canonical_key_for
from ..schemas import CanonicalIdentity
from .canonical import build_identity

LOGGER = logging.getLogger(__name__)

NAME_KEYS = ("FieldName", "name")
VALUE_KEYS = ("Value", "value")
CHILD_KEYS = ("ChildFields", "children")


def _first_present(node: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in node:
            return node[key]
    return None


def iter_leaf_fields(nodes: Any) -> Iterator[Tuple[str, str]]:
    """Yield ``(field_name, value)`` pairs depth-first, children before their parent."""
    if isinstance(nodes, (list, tuple)):
        for node in nodes:
            yield from iter_leaf_fields(node)
        return
    if not isinstance(nodes, Mapping):
        return

    children = _first_present(nodes, CHILD_KEYS)
    if children:
        yield from iter_leaf_fields(children)

    name = _first_present(nodes, NAME_KEYS)
    value = _first_present(nodes, VALUE_KEYS)
    if not name or not value:
        return
    yield str(name), str(value)


def flatten_field_tree(nodes: Any) -> Dict[str, str]:
    # Later matches overwrite earlier ones.
    flat: Dict[str, str] = {}
    for name, value in iter_leaf_fields(nodes):
        key = canonical_key_for(name)
        if key:
            flat[key] = value
    return flat


def _result_nodes(parsed_info: Any) -> Any:
    if isinstance(parsed_info, Mapping) and "ResultInfo" in parsed_info:
        return parsed_info.get("ResultInfo")
    return parsed_info


def parse_license_data(parsed_info: Any, *, today: Optional[dt.date] = None) -> CanonicalIdentity:
    flat = flatten_field_tree(_result_nodes(parsed_info))
    if not flat:
        LOGGER.info("Barcode result carried no recognised identity fields")
    else:
        LOGGER.debug("Barcode fields captured: %s", sorted(flat))
    return build_identity(flat, document_type="drivers_license", source="pdf417", today=today)
