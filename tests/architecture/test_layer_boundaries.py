"""
Import-boundary enforcement for the advance packages.

1. Kernel independence  -- advance_kernel/** may not import engines,
                           modules, or config.
2. Engine purity        -- advance_engines/** may not import ORM,
                           repositories, services, or config.
3. Engine no-impure     -- advance_engines/** may not read the wall clock
                           or the environment.
4. Service persistence  -- the lifecycle service reaches storage only
                           through the repository port.

All scanning is done via AST -- these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return [Path(p) for p in sorted(glob.glob(str(ROOT / package / "**" / "*.py"), recursive=True))]


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _extract_attribute_calls(filepath: Path) -> list[tuple[int, str]]:
    """(line_number, 'receiver.attr') for two-level attribute references."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(
    package: str,
    forbidden: tuple[str, ...],
    allowed: frozenset[tuple[str, str]] = frozenset(),
) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        relative = filepath.relative_to(ROOT).as_posix()
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden) and (relative, module) not in allowed:
                found.append(f"  {relative}:{lineno} imports '{module}'")
    return found


class TestKernelIndependence:

    # create_tables loads the ORM registry lazily, inside the function
    ALLOWED = frozenset({("advance_kernel/db/engine.py", "advance_modules._orm_registry")})

    def test_kernel_imports_nothing_above_it(self):
        violations = _violations(
            "advance_kernel",
            ("advance_engines", "advance_modules", "advance_config"),
            self.ALLOWED,
        )

        assert not violations, "Kernel must not import upper layers:\n" + "\n".join(violations)

    def test_packages_are_scanned(self):
        assert _python_files("advance_kernel")
        assert _python_files("advance_engines")


class TestEnginePurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "sqlite3",
        "advance_kernel.db.engine",
        "advance_kernel.db.base",
        "advance_modules.advances.orm",
        "advance_modules.advances.repository",
        "advance_modules.advances.service",
        "advance_config",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("advance_engines", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Engine purity violation -- advance_engines/** must not import "
            "ORM, repositories, services, or config:\n" + "\n".join(violations)
        )

    def test_engines_do_not_read_clock_or_environment(self):
        impure = {"datetime.now", "datetime.utcnow", "date.today", "time.time", "os.environ", "os.getenv"}
        violations = [
            f"  {filepath.relative_to(ROOT)}:{lineno} uses {attr}"
            for filepath in _python_files("advance_engines")
            for lineno, attr in _extract_attribute_calls(filepath)
            if attr in impure
        ]

        assert not violations, "Engines must be pure:\n" + "\n".join(violations)


class TestServicePersistenceBoundary:

    def test_service_does_not_touch_orm_or_sqlalchemy(self):
        service = ROOT / "advance_modules" / "advances" / "service.py"
        forbidden = ("sqlalchemy", "advance_modules.advances.orm", "advance_kernel.db.engine", "advance_config")

        violations = [
            f"  service.py:{lineno} imports '{module}'"
            for lineno, module in _extract_imports(service)
            if _matches_any(module, forbidden)
        ]

        assert not violations, "\n".join(violations)
