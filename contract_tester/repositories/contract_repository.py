"""
Contract document loading.

Turns an OpenAPI 3.x or Swagger 2.0 document (YAML or JSON) into the
immutable ContractModel the planner works from.

Implementation notes:
- Parameters, request bodies and responses referenced through local `$ref`
  are inlined here; schema `$ref`s are left in place for the SchemaResolver
- Path-level parameters are merged into each operation, operation-level
  declarations win on (name, location)
- Every structural problem is collected and raised together as one
  ContractParseError, so a broken contract fails before any request is sent
"""

import json
import logging
import os
import re
from typing import Any, Optional

import yaml

from contract_tester.constants import CONTENT_TYPE_PREFERENCE, HTTP_METHODS, PARAMETER_LOCATIONS
from contract_tester.errors import ContractParseError
from contract_tester.models.contract import (
    ContractModel,
    Operation,
    Parameter,
    RequestBody,
    ResponseSpec,
)
from contract_tester.utils.json_pointer import resolve_pointer

logger = logging.getLogger(__name__)

_SERVER_VARIABLE_RE = re.compile(r"\{([^{}]+)\}")
_MAX_REF_HOPS = 32

# Swagger 2 keeps schema keywords directly on non-body parameters
_SWAGGER2_SCHEMA_KEYS = (
    "type", "format", "items", "enum", "default", "minimum", "maximum",
    "exclusiveMinimum", "exclusiveMaximum", "multipleOf", "minLength",
    "maxLength", "pattern", "minItems", "maxItems", "uniqueItems",
)


def _media_rank(content_type: str) -> int:
    media = content_type.split(";", 1)[0].strip().lower()
    if media in CONTENT_TYPE_PREFERENCE:
        return CONTENT_TYPE_PREFERENCE.index(media)
    if media.endswith("+json"):
        return 0
    if media.startswith("text/"):
        return len(CONTENT_TYPE_PREFERENCE)
    return len(CONTENT_TYPE_PREFERENCE) + 1


def pick_media_type(content_types) -> Optional[str]:
    """Preferred media type among the declared ones; JSON first, declaration order breaks ties."""
    declared = [ct for ct in content_types if isinstance(ct, str)]
    if not declared:
        return None
    return min(declared, key=_media_rank)


def _status_key(status: Any) -> str:
    key = str(status).strip()
    return "default" if key.lower() == "default" else key.upper()


class ContractRepository:
    """Loads contracts from disk or from already-parsed documents."""

    def load(self, path: str) -> ContractModel:
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise ContractParseError([f"cannot read contract: {e}"], source=path) from e
        return self.parse(text, source=path)

    def parse(self, text: str, source: Optional[str] = None) -> ContractModel:
        ext = os.path.splitext(source or "")[1].lower()
        try:
            if ext == ".json":
                document = json.loads(text)
            else:
                # YAML is a superset of JSON, so unknown extensions go through here
                document = yaml.safe_load(text)
        except json.JSONDecodeError as e:
            raise ContractParseError([f"invalid JSON: {e}"], source=source) from e
        except yaml.YAMLError as e:
            raise ContractParseError([f"invalid YAML: {e}"], source=source) from e
        return self.from_document(document, source=source)

    def from_document(self, document: Any, source: Optional[str] = None) -> ContractModel:
        if not isinstance(document, dict):
            raise ContractParseError(["contract root must be a mapping"], source=source)
        return _DocumentParser(document, source).parse()


class _DocumentParser:
    """One-shot parser; collects messages instead of stopping at the first problem."""

    def __init__(self, document: dict, source: Optional[str]):
        self.document = document
        self.source = source
        self.messages: list[str] = []
        self.swagger2 = False

    def parse(self) -> ContractModel:
        doc = self.document
        if str(doc.get("swagger", "")).startswith("2"):
            self.swagger2 = True
        elif not str(doc.get("openapi", "")).startswith("3"):
            raise ContractParseError(
                ["missing or unsupported version: expected 'openapi: 3.x' or 'swagger: 2.0'"],
                source=self.source,
            )

        info = doc.get("info") if isinstance(doc.get("info"), dict) else {}
        paths = self._mapping(doc.get("paths"), "'paths'")

        servers = self._swagger2_servers() if self.swagger2 else self._servers()
        operations: list[Operation] = []
        for path, item in paths.items():
            if not isinstance(item, dict):
                self.messages.append(f"path item {path!r} must be a mapping")
                continue
            item = self._deref(item, f"path item {path!r}")
            if item is None:
                continue
            if not isinstance(item, dict):
                self.messages.append(f"path item {path!r} must be a mapping")
                continue
            shared = self._list(item.get("parameters"), f"path {path!r} parameters")
            for key, node in item.items():
                method = str(key).upper()
                if method not in HTTP_METHODS:
                    continue
                if not isinstance(node, dict):
                    self.messages.append(f"{method} {path}: operation must be a mapping")
                    continue
                operation = self._operation(method, str(path), node, shared)
                if operation is not None:
                    operations.append(operation)

        if self.messages:
            raise ContractParseError(self.messages, source=self.source)

        logger.info(
            f"Loaded contract {info.get('title', '')!r} with {len(operations)} operations",
            extra={"source": self.source, "swagger2": self.swagger2},
        )
        return ContractModel(
            title=str(info.get("title", "")),
            version=str(info.get("version", "")),
            servers=tuple(servers),
            operations=tuple(operations),
            document=doc,
        )

    # --- references ---

    def _deref(self, node: Any, where: str) -> Optional[Any]:
        """Follow local `$ref`s on a non-schema object; None (and a message) when broken."""
        seen = []
        while isinstance(node, dict) and "$ref" in node:
            ref = node["$ref"]
            if not isinstance(ref, str) or not ref.startswith("#"):
                self.messages.append(f"{where}: only local references are supported, got {ref!r}")
                return None
            if ref in seen or len(seen) >= _MAX_REF_HOPS:
                self.messages.append(f"{where}: circular reference {' -> '.join(seen + [ref])}")
                return None
            seen.append(ref)
            try:
                node = resolve_pointer(self.document, ref)
            except KeyError:
                self.messages.append(f"{where}: unresolved reference {ref!r}")
                return None
        return node

    def _mapping(self, value: Any, where: str) -> dict:
        """`value` as a mapping; any other type is recorded and read as empty."""
        if value is None:
            return {}
        if not isinstance(value, dict):
            self.messages.append(f"{where} must be a mapping, got {type(value).__name__}")
            return {}
        return value

    def _list(self, value: Any, where: str) -> list:
        if value is None:
            return []
        if not isinstance(value, list):
            self.messages.append(f"{where} must be a list, got {type(value).__name__}")
            return []
        return value

    # --- servers ---

    def _servers(self) -> list[str]:
        urls = []
        for server in self._list(self.document.get("servers"), "'servers'"):
            if not isinstance(server, dict) or not isinstance(server.get("url"), str):
                continue
            variables = self._mapping(server.get("variables"), f"server {server['url']!r} variables")

            def substitute(match, variables=variables):
                var = variables.get(match.group(1))
                if isinstance(var, dict) and "default" in var:
                    return str(var["default"])
                return match.group(0)

            urls.append(_SERVER_VARIABLE_RE.sub(substitute, server["url"]))
        return urls

    def _swagger2_servers(self) -> list[str]:
        host = self.document.get("host")
        base_path = self.document.get("basePath") or ""
        if not host:
            return [base_path] if base_path else []
        schemes = self.document.get("schemes") or ["http"]
        return [f"{scheme}://{host}{base_path}" for scheme in schemes]

    # --- operations ---

    def _operation(self, method: str, path: str, node: dict, shared: list) -> Optional[Operation]:
        where = f"{method} {path}"
        merged: dict[tuple[str, str], dict] = {}
        for raw in shared + self._list(node.get("parameters"), f"{where} parameters"):
            param = self._deref(raw, f"{where} parameter")
            if param is None:
                continue
            if not isinstance(param, dict) or "name" not in param or "in" not in param:
                self.messages.append(f"{where}: parameter needs 'name' and 'in'")
                continue
            merged[(str(param["name"]), str(param["in"]))] = param

        parameters: list[Parameter] = []
        request_body: Optional[RequestBody] = None
        form_fields: list[dict] = []
        for (name, location), param in merged.items():
            if self.swagger2 and location == "body":
                request_body = RequestBody(
                    content_type=pick_media_type(self._consumes(node)) or "application/json",
                    schema_node=param.get("schema") if isinstance(param.get("schema"), dict) else {},
                    required=bool(param.get("required", False)),
                )
                continue
            if self.swagger2 and location == "formData":
                form_fields.append(param)
                continue
            if location not in PARAMETER_LOCATIONS:
                self.messages.append(f"{where}: parameter {name!r} has unknown location {location!r}")
                continue
            parameters.append(Parameter(
                name=name,
                location=location,
                required=bool(param.get("required", location == "path")),
                schema_node=self._parameter_schema(param),
            ))

        if form_fields and request_body is None:
            request_body = self._swagger2_form_body(node, form_fields)
        if not self.swagger2 and "requestBody" in node:
            request_body = self._request_body(node["requestBody"], where)

        responses = {}
        for status, raw in self._mapping(node.get("responses"), f"{where} responses").items():
            response = self._deref(raw, f"{where} response {status}")
            if not isinstance(response, dict):
                continue
            key = _status_key(status)
            if self.swagger2:
                responses[key] = self._swagger2_response(key, response, node)
            else:
                responses[key] = self._response(key, response, f"{where} response {status}")

        return Operation(
            method=method,
            path=path,
            operation_id=str(node["operationId"]) if node.get("operationId") is not None else None,
            parameters=tuple(parameters),
            request_body=request_body,
            responses=responses,
        )

    def _parameter_schema(self, param: dict) -> dict:
        if self.swagger2:
            return {k: param[k] for k in _SWAGGER2_SCHEMA_KEYS if k in param}
        if isinstance(param.get("schema"), dict):
            return param["schema"]
        content = param.get("content")
        if isinstance(content, dict) and content:
            media = content[pick_media_type(content) or next(iter(content))]
            if isinstance(media, dict) and isinstance(media.get("schema"), dict):
                return media["schema"]
        return {}

    def _request_body(self, raw: Any, where: str) -> Optional[RequestBody]:
        body = self._deref(raw, f"{where} requestBody")
        if not isinstance(body, dict):
            return None
        content = self._mapping(body.get("content"), f"{where} requestBody content")
        content_type = pick_media_type(content)
        if content_type is None:
            return None
        media = content.get(content_type)
        schema = media.get("schema") if isinstance(media, dict) else None
        return RequestBody(
            content_type=content_type,
            schema_node=schema if isinstance(schema, dict) else {},
            required=bool(body.get("required", False)),
        )

    def _response(self, status: str, response: dict, where: str) -> ResponseSpec:
        content = self._mapping(response.get("content"), f"{where} content")
        content_type = pick_media_type(content)
        if content_type is None:
            return ResponseSpec(status=status)
        media = content.get(content_type)
        schema = media.get("schema") if isinstance(media, dict) else None
        return ResponseSpec(
            status=status,
            content_type=content_type,
            schema_node=schema if isinstance(schema, dict) else None,
        )

    # --- swagger 2 specifics ---

    def _consumes(self, node: dict) -> list:
        return self._list(node.get("consumes") or self.document.get("consumes"), "'consumes'")

    def _produces(self, node: dict) -> list:
        return self._list(node.get("produces") or self.document.get("produces"), "'produces'")

    def _swagger2_form_body(self, node: dict, fields: list[dict]) -> RequestBody:
        properties = {}
        required = []
        for field in fields:
            properties[field["name"]] = {k: field[k] for k in _SWAGGER2_SCHEMA_KEYS if k in field}
            if field.get("required"):
                required.append(field["name"])
        schema: dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        declared = [ct for ct in self._consumes(node) if "form" in str(ct)]
        return RequestBody(
            content_type=pick_media_type(declared) or "application/x-www-form-urlencoded",
            schema_node=schema,
            required=bool(required),
        )

    def _swagger2_response(self, status: str, response: dict, node: dict) -> ResponseSpec:
        schema = response.get("schema")
        if not isinstance(schema, dict):
            return ResponseSpec(status=status)
        return ResponseSpec(
            status=status,
            content_type=pick_media_type(self._produces(node)) or "application/json",
            schema_node=schema,
        )


def load(path: str) -> ContractModel:
    """Load a contract file into a ContractModel."""
    return ContractRepository().load(path)
