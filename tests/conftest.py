# tests/conftest.py
# Shared fixtures: a small petstore contract, a scripted HttpClient and an in-memory sink

import asyncio
import json
from typing import Callable, Mapping, Optional, Union

import pytest

from contract_tester.config import RunConfig
from contract_tester.models.plan import HttpResponse
from contract_tester.reporting.sinks import MemorySink
from contract_tester.repositories.contract_repository import ContractRepository
from contract_tester.utils.retry import RetryPolicy

BASE_URL = "http://api.test"


def petstore_document() -> dict:
    """ OpenAPI 3 petstore with a recursive schema, a path parameter and a JSON body. """
    return {
        "openapi": "3.0.3",
        "info": {"title": "Petstore", "version": "1.0.0"},
        "servers": [{"url": "http://{host}/v1", "variables": {"host": {"default": "petstore.test"}}}],
        "paths": {
            "/pets": {
                "get": {
                    "operationId": "listPets",
                    "parameters": [
                        {"name": "limit", "in": "query", "required": True,
                         "schema": {"type": "integer", "minimum": 1, "maximum": 100}},
                    ],
                    "responses": {
                        "200": {
                            "description": "ok",
                            "content": {"application/json": {
                                "schema": {"type": "array", "items": {"$ref": "#/components/schemas/Pet"}},
                            }},
                        },
                    },
                },
                "post": {
                    "operationId": "createPet",
                    "requestBody": {
                        "required": True,
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/NewPet"}}},
                    },
                    "responses": {
                        "201": {
                            "description": "created",
                            "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                        },
                    },
                },
            },
            "/pets/{petId}": {
                "parameters": [
                    {"name": "petId", "in": "path", "required": True, "schema": {"type": "integer", "minimum": 7}},
                ],
                "get": {
                    "operationId": "showPet",
                    "responses": {
                        "200": {
                            "description": "ok",
                            "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                        },
                        "default": {"description": "error"},
                    },
                },
            },
        },
        "components": {
            "schemas": {
                "Pet": {
                    "type": "object",
                    "required": ["id", "name"],
                    "properties": {
                        "id": {"type": "integer"},
                        "name": {"type": "string"},
                        "parent": {"$ref": "#/components/schemas/Pet"},
                    },
                },
                "NewPet": {
                    "type": "object",
                    "required": ["name"],
                    "properties": {
                        "name": {"type": "string", "minLength": 3},
                        "tag": {"type": "string"},
                    },
                },
            },
        },
    }


def json_response(payload, status_code: int = 200, content_type: str = "application/json") -> HttpResponse:
    return HttpResponse(
        status_code=status_code,
        headers={"Content-Type": content_type},
        body=json.dumps(payload).encode("utf-8"),
    )


Handler = Callable[[str, str], Union[HttpResponse, BaseException]]


class FakeHttpClient:
    """
    Scripted HttpClient.

    `routes` maps "METHOD url-prefix" to a response, an exception instance, or a
    callable returning either. Every call is recorded in `calls`.
    """

    def __init__(self, routes: Optional[Mapping[str, object]] = None, delay: float = 0.0, default=None):
        self.routes = dict(routes or {})
        self.delay = delay
        self.default = default if default is not None else json_response({}, 200)
        self.calls: list[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def _lookup(self, method: str, url: str):
        best = None
        for key, value in self.routes.items():
            route_method, _, prefix = key.partition(" ")
            if route_method == method and url.startswith(prefix):
                if best is None or len(prefix) > len(best[0]):
                    best = (prefix, value)
        return best[1] if best is not None else self.default

    async def send(self, method: str, url: str, headers: Mapping[str, str], body: Optional[bytes], timeout: float) -> HttpResponse:
        self.calls.append({"method": method, "url": url, "headers": dict(headers), "body": body})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            outcome = self._lookup(method, url)
            if callable(outcome) and not isinstance(outcome, HttpResponse):
                outcome = outcome(method, url)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1


@pytest.fixture
def petstore():
    return ContractRepository().from_document(petstore_document())


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def run_config():
    return RunConfig(
        base_url=BASE_URL,
        concurrency_limit=2,
        request_timeout=1.0,
        retry_policy=RetryPolicy(max_attempts=1, base_delay=0.0, max_delay=0.0),
    )
