"""Import and call policies for the envup package."""

from __future__ import annotations

import ast
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class ImportRef:
    module: str
    line: int


def envup_root() -> Path:
    return Path(__file__).resolve().parents[2]


def iter_source_files() -> list[Path]:
    root = envup_root()
    files: list[Path] = []
    for path in sorted(root.rglob("*.py")):
        rel = path.relative_to(root)
        if rel.parts[0] == "test" or "__pycache__" in rel.parts:
            continue
        files.append(path)
    return files


def read_tree(path: Path) -> ast.AST:
    return ast.parse(path.read_text(encoding="utf-8"), filename=str(path))


def parse_imports(path: Path) -> list[ImportRef]:
    imports: list[ImportRef] = []
    for node in ast.walk(read_tree(path)):
        if isinstance(node, ast.Import):
            imports.extend(ImportRef(alias.name, node.lineno) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and not node.level and node.module:
            imports.append(ImportRef(node.module, node.lineno))
    return imports


def matches_prefix(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(prefix + ".")


def _offenders(prefix: str, allowlist: set[str]) -> list[str]:
    root = envup_root()
    offenders: list[str] = []
    for path in iter_source_files():
        rel = path.relative_to(root).as_posix()
        if rel in allowlist:
            continue
        for item in parse_imports(path):
            if matches_prefix(item.module, prefix):
                offenders.append(f"{rel}:{item.line}: imports '{item.module}'")
    return offenders


def test_subprocess_only_in_process_layer() -> None:
    offenders = _offenders("subprocess", {"platform/process.py"})
    assert not offenders, "subprocess outside the process layer:\n" + "\n".join(offenders)


def test_rich_only_in_approved_modules() -> None:
    offenders = _offenders("rich", {"output/console.py", "cli/commands/mcp.py"})
    assert not offenders, "direct rich usage:\n" + "\n".join(offenders)


def test_typer_only_in_cli() -> None:
    offenders = [line for line in _offenders("typer", set()) if not line.startswith("cli/")]
    assert not offenders, "typer outside the CLI layer:\n" + "\n".join(offenders)


def test_services_do_not_import_cli() -> None:
    offenders = [line for line in _offenders("envup.cli", set()) if not line.startswith("cli/")]
    assert not offenders, "lower layers importing the CLI:\n" + "\n".join(offenders)


def test_no_os_system_calls() -> None:
    offenders: list[str] = []
    root = envup_root()
    for path in iter_source_files():
        for node in ast.walk(read_tree(path)):
            if not isinstance(node, ast.Call) or not isinstance(node.func, ast.Attribute):
                continue
            func = node.func
            if isinstance(func.value, ast.Name) and func.value.id == "os":
                if func.attr in {"system", "popen"}:
                    offenders.append(f"{path.relative_to(root)}:{node.lineno}")
    assert not offenders, "os.system/os.popen usage:\n" + "\n".join(offenders)
