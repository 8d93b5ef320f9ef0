#!/usr/bin/env python3
"""
CODEREVIEW — Automated Static Validation Suite
===============================================

Repository-level checks that complement the behavioural unit tests:

  T01  Syntax validation (ast.parse)
  T02  Import validation
  T03  Version consistency (pyproject.toml ↔ central_config)
  T04  Sensitive data scan
  T05  No key handling / signing code paths
  T06  No bare ``except:``
  T07  Declared dependencies importable
  T08  Modularity (krlp_cli core never imports root-level engines)
  T09  Broadcast gate wiring

Run:
  python tests/test_codereview.py               # Printed report
  python -m pytest tests/test_codereview.py -v  # Via pytest
"""

import ast
import importlib
import re
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List

# ── Setup project root ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# All Python source files to validate
PYTHON_FILES = [
    "run.py",
    "position_reader.py",
    "range_engine.py",
    "incentive_keys.py",
    "tx_forensics.py",
    "krlp_cli/__init__.py",
    "krlp_cli/errors.py",
    "krlp_cli/word_codec.py",
    "krlp_cli/central_config.py",
    "krlp_cli/contract_registry.py",
    "krlp_cli/calldata.py",
    "krlp_cli/rpc_transport.py",
    "krlp_cli/commands.py",
]

CORE_MODULES = [
    "krlp_cli.errors",
    "krlp_cli.word_codec",
    "krlp_cli.central_config",
    "krlp_cli.contract_registry",
    "krlp_cli.calldata",
    "krlp_cli.rpc_transport",
]

ENGINE_MODULES = [
    "position_reader",
    "range_engine",
    "incentive_keys",
    "tx_forensics",
    "krlp_cli.commands",
    "run",
]

# Sensitive patterns to scan for
SENSITIVE_PATTERNS = [
    r"(?i)private.?key\s*=\s*['\"]0x",
    r"(?i)secret\s*=\s*['\"]",
    r"(?i)password\s*=\s*['\"](?!.*example)",
    r"(?i)api.?key\s*=\s*['\"][a-zA-Z0-9]{20,}",
    r"(?i)bearer\s+[a-zA-Z0-9._-]{20,}",
    r"(?i)mnemonic\s*=\s*['\"]",
]

# The tool forwards pre-signed payloads only; none of these may appear.
SIGNING_PATTERNS = [
    r"eth_sendTransaction\b",
    r"eth_sign\b",
    r"sign_transaction",
    r"Account\.from_key",
    r"eth_account",
]


class CodeReviewResults:
    """Collects and formats check results for the codereview report."""

    def __init__(self):
        self.results: List[Dict] = []
        self.start_time = time.time()

    def add(self, test_id: str, name: str, passed: bool, detail: str = "", severity: str = "PASS"):
        self.results.append(
            {
                "id": test_id,
                "name": name,
                "passed": passed,
                "detail": detail,
                "severity": severity if not passed else "PASS",
            }
        )

    def summary(self) -> str:
        elapsed = time.time() - self.start_time
        total = len(self.results)
        passed = sum(1 for r in self.results if r["passed"])

        lines = ["", "═" * 70, "  CODEREVIEW — Automated Validation Report",
                 f"  {datetime.now().strftime('%Y-%m-%d %H:%M:%S')} | {elapsed:.1f}s", "═" * 70, ""]
        icons = {"PASS": "✅", "LOW": "🟢", "MEDIUM": "🟡", "HIGH": "🟠", "CRITICAL": "🔴"}
        for r in self.results:
            status = "PASS" if r["passed"] else f"FAIL [{r['severity']}]"
            lines.append(f"  {icons.get(r['severity'], '❓')} {r['id']:5s} {r['name']:<45s} {status}")
            if r["detail"] and not r["passed"]:
                lines.extend(f"         {d}" for d in r["detail"].split("\n"))
        lines += ["", "─" * 70, f"  Results: {passed}/{total} passed"]
        lines.append("  🎉 ALL CHECKS PASSED" if passed == total else f"  ⚠️  {total - passed} check(s) failed")
        lines.append("─" * 70)
        return "\n".join(lines)


def _source(f: str) -> str:
    return (PROJECT_ROOT / f).read_text()


# ═══════════════════════════════════════════════════════════════════════
# T01 — Syntax
# ═══════════════════════════════════════════════════════════════════════


def _t01_syntax(results: CodeReviewResults):
    """T01: All Python files parse without syntax errors."""
    errors = []
    for f in PYTHON_FILES:
        fpath = PROJECT_ROOT / f
        if not fpath.exists():
            errors.append(f"{f}: FILE NOT FOUND")
            continue
        try:
            ast.parse(fpath.read_text())
        except SyntaxError as e:
            errors.append(f"{f}: line {e.lineno}: {e.msg}")
    detail = "\n".join(errors) if errors else f"{len(PYTHON_FILES)} files OK"
    results.add("T01", "Syntax validation (ast.parse)", not errors, detail, "CRITICAL")


# ═══════════════════════════════════════════════════════════════════════
# T02 — Imports
# ═══════════════════════════════════════════════════════════════════════


def _t02_imports(results: CodeReviewResults):
    """T02: All project modules import without error and carry a docstring."""
    errors = []
    for mod_name in CORE_MODULES + ENGINE_MODULES:
        try:
            mod = importlib.import_module(mod_name)
        except Exception as e:  # noqa: BLE001
            errors.append(f"{mod_name}: {e}")
            continue
        if not getattr(mod, "__doc__", None):
            errors.append(f"{mod_name}: missing module docstring")
    detail = "\n".join(errors) if errors else "all modules OK"
    results.add("T02", "Import validation", not errors, detail, "CRITICAL")


# ═══════════════════════════════════════════════════════════════════════
# T03 — Version consistency
# ═══════════════════════════════════════════════════════════════════════


def _t03_version(results: CodeReviewResults):
    """T03: Version in pyproject.toml matches central_config.py and the package."""
    import krlp_cli
    from krlp_cli.central_config import PROJECT_VERSION

    match = re.search(r'version\s*=\s*"([^"]+)"', _source("pyproject.toml"))
    toml_version = match.group(1) if match else "NOT_FOUND"
    ok = PROJECT_VERSION == toml_version == krlp_cli.__version__
    results.add("T03", "Version consistency", ok,
                f"central_config={PROJECT_VERSION}, pyproject.toml={toml_version}", "HIGH")


# ═══════════════════════════════════════════════════════════════════════
# T04 / T05 — Secrets and signing
# ═══════════════════════════════════════════════════════════════════════


def _scan(patterns: List[str]) -> List[str]:
    findings = []
    for f in PYTHON_FILES:
        for i, line in enumerate(_source(f).split("\n"), 1):
            for pattern in patterns:
                if re.search(pattern, line):
                    findings.append(f"{f}:{i} — matches: {pattern}")
    return findings


def _t04_secrets(results: CodeReviewResults):
    """T04: No hardcoded secrets/keys in source code."""
    findings = _scan(SENSITIVE_PATTERNS)
    results.add("T04", "Sensitive data scan", not findings,
                "\n".join(findings[:5]) if findings else "No secrets found", "CRITICAL")


def _t05_no_signing(results: CodeReviewResults):
    """T05: The tool never signs or asks a node to sign."""
    findings = _scan(SIGNING_PATTERNS)
    results.add("T05", "No key handling / signing", not findings,
                "\n".join(findings[:5]) if findings else "No signing paths", "CRITICAL")


# ═══════════════════════════════════════════════════════════════════════
# T06 — Exception hygiene
# ═══════════════════════════════════════════════════════════════════════


def _t06_no_bare_except(results: CodeReviewResults):
    """T06: No bare ``except:`` clauses."""
    findings = []
    for f in PYTHON_FILES:
        for node in ast.walk(ast.parse(_source(f))):
            if isinstance(node, ast.ExceptHandler) and node.type is None:
                findings.append(f"{f}:{node.lineno}")
    results.add("T06", "No bare except", not findings, "\n".join(findings), "HIGH")


# ═══════════════════════════════════════════════════════════════════════
# T07 — Requirements
# ═══════════════════════════════════════════════════════════════════════

# distribution name → import name
_IMPORT_NAMES = {"eth-utils": "eth_utils", "eth-hash": "eth_hash"}


def _t07_requirements(results: CodeReviewResults):
    """T07: Every declared runtime dependency is importable."""
    toml_text = _source("pyproject.toml")
    block = re.search(r"dependencies\s*=\s*\[(.*?)\]", toml_text, re.S)
    deps = re.findall(r'"([A-Za-z][\w.-]*)', block.group(1)) if block else []
    findings = []
    for dep in deps:
        name = _IMPORT_NAMES.get(dep, dep.replace("-", "_"))
        try:
            importlib.import_module(name)
        except ImportError:
            findings.append(f"Cannot import: {dep}")
    if not deps:
        findings.append("No dependencies block found in pyproject.toml")
    results.add("T07", "Requirements validation", not findings,
                "\n".join(findings) if findings else f"{len(deps)} dependencies OK", "HIGH")


# ═══════════════════════════════════════════════════════════════════════
# T08 — Modularity
# ═══════════════════════════════════════════════════════════════════════


def _t08_modularity(results: CodeReviewResults):
    """T08: krlp_cli core modules do not import root-level engines or the CLI."""
    findings = []
    roots = {m for m in ENGINE_MODULES if "." not in m}
    for mod_name in CORE_MODULES:
        tree = ast.parse(_source(mod_name.replace(".", "/") + ".py"))
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                names = [a.name.split(".")[0] for a in node.names]
            elif isinstance(node, ast.ImportFrom) and node.module:
                names = [node.module.split(".")[0]]
            else:
                continue
            for name in names:
                if name in roots:
                    findings.append(f"{mod_name}: imports {name} (breaks modularity)")
    results.add("T08", "Modularity check", not findings,
                "\n".join(findings) if findings else "core isolated", "MEDIUM")


# ═══════════════════════════════════════════════════════════════════════
# T09 — Broadcast gate
# ═══════════════════════════════════════════════════════════════════════


def _t09_broadcast_gate(results: CodeReviewResults):
    """T09: eth_sendRawTransaction is only reachable behind the SEND confirmation."""
    findings = []
    for f in PYTHON_FILES:
        text = _source(f)
        if "eth_sendRawTransaction" in text and f != "krlp_cli/rpc_transport.py":
            findings.append(f"{f}: sends raw transactions outside the transport gate")
    gate = _source("krlp_cli/rpc_transport.py")
    if 'BROADCAST_CONFIRMATION = "SEND"' not in gate or "BroadcastBlockedError" not in gate:
        findings.append("rpc_transport.py: broadcast confirmation gate missing")
    results.add("T09", "Broadcast gate", not findings, "\n".join(findings), "CRITICAL")


# ═══════════════════════════════════════════════════════════════════════


CHECKS = [
    _t01_syntax,
    _t02_imports,
    _t03_version,
    _t04_secrets,
    _t05_no_signing,
    _t06_no_bare_except,
    _t07_requirements,
    _t08_modularity,
    _t09_broadcast_gate,
]


def run_all() -> int:
    """Execute all codereview checks and print summary."""
    results = CodeReviewResults()
    print("\n🔍 CODEREVIEW — Starting automated validation...")
    print(f"   Root: {PROJECT_ROOT}\n")
    for check in CHECKS:
        print(f"  ⏳ {check.__doc__.split(':')[0]}...")
        check(results)
    print(results.summary())
    critical_fails = sum(1 for r in results.results if not r["passed"] and r["severity"] == "CRITICAL")
    return 1 if critical_fails > 0 else 0


# ── Pytest integration ──────────────────────────────────────────────────

import pytest  # noqa: E402


@pytest.fixture(scope="module")
def cr():
    return CodeReviewResults()


def _passed(cr, test_id):
    return all(r["passed"] for r in cr.results if r["id"] == test_id)


def test_cr_t01_syntax(cr): _t01_syntax(cr); assert _passed(cr, "T01")
def test_cr_t02_imports(cr): _t02_imports(cr); assert _passed(cr, "T02")
def test_cr_t03_version(cr): _t03_version(cr); assert _passed(cr, "T03")
def test_cr_t04_secrets(cr): _t04_secrets(cr); assert _passed(cr, "T04")
def test_cr_t05_no_signing(cr): _t05_no_signing(cr); assert _passed(cr, "T05")
def test_cr_t06_bare_except(cr): _t06_no_bare_except(cr); assert _passed(cr, "T06")
def test_cr_t07_requirements(cr): _t07_requirements(cr); assert _passed(cr, "T07")
def test_cr_t08_modularity(cr): _t08_modularity(cr); assert _passed(cr, "T08")
def test_cr_t09_broadcast_gate(cr): _t09_broadcast_gate(cr); assert _passed(cr, "T09")


# ── CLI entry point ─────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(run_all())
