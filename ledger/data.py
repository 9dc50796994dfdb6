"""
Crowdfund Ledger - On-chain Data Tree

This module models the untyped data tree that ledger entries carry inline
(records) and that callers attach to script executions (actions). A node is
one of: an integer, a byte string, a list of nodes, a map from node to node,
or a constructor application ``Constr(tag, fields)``.

It also provides the JSON rendition of the tree in the detailed-schema shape
used by ledger tooling:

    {"constructor": 0, "fields": [{"int": 42}, {"bytes": "cafe"}]}
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple, Union

from .exceptions import SchemaError


@dataclass(frozen=True)
class Constr:
    """Constructor application: a tag plus positional fields."""
    tag: int
    fields: Tuple[Any, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if isinstance(self.tag, bool) or not isinstance(self.tag, int) or self.tag < 0:
            raise SchemaError(f"Constructor tag must be a non-negative integer, got {self.tag!r}")
        # Normalise so that Constr(0, [x]) == Constr(0, (x,))
        object.__setattr__(self, "fields", tuple(self.fields))

    def expect(self, tag: int, arity: int) -> Tuple[Any, ...]:
        """
        Return the fields after checking the tag and the field count.

        Args:
            tag: Expected constructor tag
            arity: Expected number of fields

        Returns:
            The constructor fields
        """
        if self.tag != tag:
            raise SchemaError(f"Expected constructor {tag}, got {self.tag}")
        if len(self.fields) != arity:
            raise SchemaError(
                f"Constructor {tag} expects {arity} fields, got {len(self.fields)}"
            )
        return self.fields


PlutusData = Union[int, bytes, List[Any], Dict[Any, Any], Constr]


def is_data(value: Any) -> bool:
    """Check whether a Python value is a well-formed data node."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, bytes)):
        return True
    if isinstance(value, Constr):
        return all(is_data(item) for item in value.fields)
    if isinstance(value, list):
        return all(is_data(item) for item in value)
    if isinstance(value, dict):
        return all(is_data(k) and is_data(v) for k, v in value.items())
    return False


def to_json(value: PlutusData) -> Dict[str, Any]:
    """
    Convert a data node into its detailed-schema JSON object.

    Args:
        value: Data node

    Returns:
        JSON-compatible dictionary
    """
    if isinstance(value, bool):
        raise SchemaError("Booleans are not data; encode them as constructors")
    if isinstance(value, int):
        return {"int": value}
    if isinstance(value, bytes):
        return {"bytes": value.hex()}
    if isinstance(value, Constr):
        return {
            "constructor": value.tag,
            "fields": [to_json(item) for item in value.fields],
        }
    if isinstance(value, list):
        return {"list": [to_json(item) for item in value]}
    if isinstance(value, dict):
        return {"map": [{"k": to_json(k), "v": to_json(v)} for k, v in value.items()]}
    raise SchemaError(f"Unsupported data node type: {type(value).__name__}")


def from_json(obj: Any) -> PlutusData:
    """
    Convert a detailed-schema JSON object back into a data node.

    Args:
        obj: Parsed JSON object

    Returns:
        Data node
    """
    if not isinstance(obj, dict):
        raise SchemaError(f"Data node must be a JSON object, got {type(obj).__name__}")

    if "constructor" in obj:
        if set(obj) != {"constructor", "fields"}:
            raise SchemaError(f"Malformed constructor node: {sorted(obj)}")
        fields = obj["fields"]
        if not isinstance(fields, list):
            raise SchemaError("Constructor fields must be a list")
        return Constr(obj["constructor"], tuple(from_json(item) for item in fields))

    if len(obj) != 1:
        raise SchemaError(f"Malformed data node: {sorted(obj)}")

    (kind, payload), = obj.items()
    if kind == "int":
        if isinstance(payload, bool) or not isinstance(payload, int):
            raise SchemaError(f"Integer node carries {payload!r}")
        return payload
    if kind == "bytes":
        try:
            return bytes.fromhex(payload)
        except (TypeError, ValueError) as e:
            raise SchemaError(f"Bytes node is not valid hex: {e}") from e
    if kind == "list":
        if not isinstance(payload, list):
            raise SchemaError("List node must carry a list")
        return [from_json(item) for item in payload]
    if kind == "map":
        if not isinstance(payload, list):
            raise SchemaError("Map node must carry a list of pairs")
        result = {}
        for pair in payload:
            if not isinstance(pair, dict) or set(pair) != {"k", "v"}:
                raise SchemaError("Map entries must be {\"k\": ..., \"v\": ...} objects")
            key = from_json(pair["k"])
            if isinstance(key, (list, dict)):
                raise SchemaError("Map keys must be scalar or constructor nodes")
            try:
                duplicate = key in result
            except TypeError as e:
                raise SchemaError(f"Map key cannot hold a list or map: {e}") from e
            if duplicate:
                raise SchemaError(f"Duplicate map key {pair['k']!r}")
            result[key] = from_json(pair["v"])
        return result

    raise SchemaError(f"Unknown data node kind: {kind}")


def dumps(value: PlutusData) -> str:
    """Serialize a data node to canonical JSON text."""
    return json.dumps(to_json(value), sort_keys=True, separators=(",", ":"))


def loads(text: str) -> PlutusData:
    """Parse JSON text into a data node."""
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"Invalid data JSON: {e}") from e
    return from_json(obj)
