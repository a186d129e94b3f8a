# contract_tester/utils/json_pointer.py

from typing import Any
from urllib.parse import unquote

_MISSING = object()


def _unescape(token: str) -> str:
    # RFC 6901: "~1" before "~0"
    return unquote(token).replace("~1", "/").replace("~0", "~")


def resolve_pointer(document: Any, reference: str) -> Any:
    """
    Follow an internal reference ("#/components/schemas/Pet") into `document`.

    Raises KeyError when the reference is not internal or the target is absent.
    """
    if not reference.startswith("#"):
        raise KeyError(f"external reference {reference!r} is not supported")
    pointer = reference[1:]
    if pointer in ("", "/"):
        return document
    if not pointer.startswith("/"):
        raise KeyError(f"malformed pointer {reference!r}")

    node = document
    for raw in pointer[1:].split("/"):
        token = _unescape(raw)
        if isinstance(node, dict):
            node = node.get(token, _MISSING)
        elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
            node = node[int(token)]
        else:
            node = _MISSING
        if node is _MISSING:
            raise KeyError(f"{reference!r}: no member {token!r}")
    return node
