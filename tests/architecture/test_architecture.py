# tests/architecture/test_architecture.py
# Architecture tests enforcing layering rules.
# - models must not import services, clients, repositories or reporting
# - services reach the network only through the HttpClient capability
# - httpx is used only by the client module (and the CLI that injects transports)
# - yaml parsing is confined to the contract repository

import ast
import pathlib

import pytest  # type: ignore[import-not-found]

REPO_ROOT = pathlib.Path(__file__).resolve().parents[2]
PACKAGE = REPO_ROOT / "contract_tester"


def _pkg_path(*parts: str) -> pathlib.Path | None:
    p = PACKAGE.joinpath(*parts)
    return p if p.exists() else None


def _iter_py_files(root: pathlib.Path):
    if root.is_file():
        yield root
        return
    for path in root.rglob("*.py"):
        # skip virtualenv & build outputs
        parts = {"venv", ".venv", "node_modules", "__pycache__"}
        if any(part in parts for part in path.parts):
            continue
        yield path


def _collect_imports(py_path: pathlib.Path) -> set[str]:
    """Return set of imported module names (full dotted path) from file."""
    try:
        src = py_path.read_text(encoding="utf-8")
    except OSError:
        return set()
    try:
        tree = ast.parse(src, filename=str(py_path))
    except SyntaxError:
        return set()
    imports: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.add(alias.name)
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                imports.add(node.module)
    return imports


def _importers_of(module_prefix: str) -> list[pathlib.Path]:
    offenders = []
    for f in _iter_py_files(PACKAGE):
        if any(name == module_prefix or name.startswith(module_prefix + ".") for name in _collect_imports(f)):
            offenders.append(f)
    return offenders


# ---------- Tests ----------

@pytest.mark.architecture
def test_models_do_not_import_upper_layers():
    models = _pkg_path("models")
    if not models:
        pytest.skip("No models package in repo; skipping")
    forbidden = ("contract_tester.services", "contract_tester.clients", "contract_tester.repositories", "contract_tester.reporting")
    for f in _iter_py_files(models):
        for name in _collect_imports(f):
            assert not name.startswith(forbidden), f"models must not import {name}: {f}"


@pytest.mark.architecture
def test_services_do_not_use_httpx_directly():
    services = _pkg_path("services")
    if not services:
        pytest.skip("No services package; skipping")
    offenders = [f for f in _iter_py_files(services) if "httpx" in {n.split(".")[0] for n in _collect_imports(f)}]
    assert not offenders, "Services must go through HttpClient; offending files:\n" + "\n".join(map(str, offenders))


@pytest.mark.architecture
def test_httpx_is_confined_to_the_client_and_entry_point():
    allowed = {PACKAGE / "clients" / "http_client.py", PACKAGE / "main.py"}
    offenders = [f for f in _importers_of("httpx") if f not in allowed]
    assert not offenders, "httpx used outside the client module:\n" + "\n".join(map(str, offenders))


@pytest.mark.architecture
def test_yaml_is_confined_to_the_contract_repository():
    allowed = {PACKAGE / "repositories" / "contract_repository.py"}
    offenders = [f for f in _importers_of("yaml") if f not in allowed]
    assert not offenders, "yaml parsing outside the repository:\n" + "\n".join(map(str, offenders))


@pytest.mark.architecture
def test_core_services_do_not_depend_on_orchestration():
    for name in ("schema_resolver.py", "schema_validator.py", "request_planner.py", "dispatcher.py"):
        path = _pkg_path("services", name)
        if not path:
            continue
        imports = _collect_imports(path)
        assert "contract_tester.services.orchestrator" not in imports, f"{name} must not import the orchestrator"
        assert not any(i.startswith("contract_tester.reporting") for i in imports), f"{name} must not import reporting"
