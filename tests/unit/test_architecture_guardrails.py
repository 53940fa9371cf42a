from __future__ import annotations

import ast
import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

ROOT = Path(__file__).resolve().parents[2]
SRC_ROOT = ROOT / "src" / "hearthgate"

LAYER_ORDER = ("domain", "application", "infrastructure")


def _path_to_module(path: Path) -> str:
    return ".".join(path.relative_to(ROOT / "src").with_suffix("").parts)


def _layer_of(module: str) -> str | None:
    parts = module.split(".")
    if len(parts) >= 2 and parts[0] == "hearthgate" and parts[1] in LAYER_ORDER:
        return parts[1]
    return None


def _imported_modules(module: str, tree: ast.AST) -> set[str]:
    targets: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            targets.update(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            if node.level:
                base = module.split(".")[: -node.level]
                targets.add(".".join(base + ([node.module] if node.module else [])))
            elif node.module:
                targets.add(node.module)
    return {target for target in targets if target.startswith("hearthgate")}


def _load_module_graph() -> dict[str, set[str]]:
    trees = {
        _path_to_module(path): ast.parse(path.read_text(encoding="utf-8-sig"))
        for path in SRC_ROOT.rglob("*.py")
    }
    known = set(trees)
    graph: dict[str, set[str]] = {}
    for module, tree in trees.items():
        edges = set()
        for target in _imported_modules(module, tree):
            while target not in known and "." in target:
                target = target.rsplit(".", 1)[0]
            if target in known and target != module:
                edges.add(target)
        graph[module] = edges
    return graph


def _find_cycle(graph: dict[str, set[str]]) -> list[str]:
    visiting: list[str] = []
    done: set[str] = set()

    def visit(node: str) -> list[str]:
        if node in visiting:
            return visiting[visiting.index(node):] + [node]
        if node in done:
            return []
        visiting.append(node)
        for nxt in sorted(graph.get(node, ())):
            cycle = visit(nxt)
            if cycle:
                return cycle
        visiting.pop()
        done.add(node)
        return []

    for node in sorted(graph):
        cycle = visit(node)
        if cycle:
            return cycle
    return []


class ArchitectureGuardrailTests(unittest.TestCase):
    def test_layers_only_import_downstream(self) -> None:
        violations = []
        for source, targets in _load_module_graph().items():
            source_layer = _layer_of(source)
            if source_layer is None:
                continue
            for target in targets:
                target_layer = _layer_of(target)
                if target_layer is None:
                    violations.append(f"{source} -> {target}")
                elif LAYER_ORDER.index(target_layer) > LAYER_ORDER.index(source_layer):
                    # Application code must not reach into infrastructure, nor domain into either.
                    violations.append(f"{source} -> {target}")
        self.assertEqual([], sorted(violations))

    def test_runtime_import_graph_has_no_cycles(self) -> None:
        cycle = _find_cycle(_load_module_graph())
        self.assertEqual([], cycle, f"Import cycle detected: {' -> '.join(cycle)}")


if __name__ == "__main__":
    unittest.main()
