"""Encoding and matching of workflow identifiers."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from .models import Identifier

logger = logging.getLogger(__name__)

IdentifierLike = Union[Identifier, Mapping[str, Any]]


def encode_identifiers(identifiers: Optional[Iterable[IdentifierLike]]) -> str:
    """Serialize identifiers to the JSON text stored on the workflow row.

    ``None`` is stored as an empty list. Values are normalised to strings so
    that they match lookups by their text form; entries without a key or
    value are skipped. No de-duplication happens here.
    """
    if identifiers is None:
        return "[]"
    encoded: list[dict[str, str]] = []
    for item in identifiers:
        try:
            encoded.append(Identifier.model_validate(item).model_dump())
        except ValidationError:
            logger.warning(f"Skipping malformed identifier {item!r}")
    return json.dumps(encoded)


def decode_identifiers(raw: Optional[str]) -> list[Identifier]:
    """Parse the stored JSON text, skipping entries that are not key/value pairs."""
    if not raw:
        return []
    try:
        items = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Discarding undecodable identifiers blob: {raw!r}")
        return []
    if not isinstance(items, list):
        return []

    decoded: list[Identifier] = []
    for item in items:
        try:
            decoded.append(Identifier.model_validate(item))
        except ValidationError:
            logger.debug(f"Skipping malformed identifier {item!r}")
    return decoded


def parse_identifier(candidate: Any) -> Identifier | None:
    """Return ``candidate`` as an ``Identifier`` or ``None`` when malformed.

    Both key and value must be present and non-empty.
    """
    if isinstance(candidate, Identifier):
        identifier = candidate
    elif isinstance(candidate, Mapping):
        try:
            identifier = Identifier.model_validate(candidate)
        except ValidationError:
            return None
    else:
        return None
    if not identifier.key or not identifier.value:
        return None
    return identifier


def contains_identifier(identifiers: Iterable[Identifier], key: str, value: str) -> bool:
    return any(i.key == key and i.value == value for i in identifiers)


def containment_needle(key: str, value: str) -> str:
    """JSON document used by backends that test array containment."""
    return json.dumps([{"key": key, "value": value}])
