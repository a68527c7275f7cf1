#!/usr/bin/env python3
"""Security & PII gate for runtime code under src/.

Fails if:
- print( is used anywhere in src/**
- a logger call mentions guest-authored text, auth material or raw request
  data without going through safe_log_context/redact_value/redact_string

Logger calls are checked as whole statements, so a multi-line call with
the redaction helper on any of its lines passes.

Usage:
    python scripts/gate_security_pii.py
"""

from __future__ import annotations

import re
import sys
from pathlib import Path

SENSITIVE_KEYWORDS = (
    "guest_message",
    "host_response",
    "description",
    "dispute_reason",
    "request.body",
    "request.json",
    "authorization",
    "token",
    "email",
    "phone",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(
    r"\blogger\.(debug|info|warning|error|critical|exception)\s*\("
)

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
)


def _strip_comment(line: str) -> str:
    return line.split("#", 1)[0]


def _logger_statement(lines: list[str], start: int) -> str:
    """Join lines from a logger call until its parentheses balance."""
    depth = 0
    parts: list[str] = []
    for line in lines[start:]:
        code = _strip_comment(line)
        parts.append(code)
        depth += code.count("(") - code.count(")")
        if depth <= 0:
            break
    return "\n".join(parts)


def check_source(source: str, filename: str = "<string>") -> list[str]:
    """Return violations found in one file's source text."""
    errors: list[str] = []
    lines = source.splitlines()

    for index, line in enumerate(lines):
        lineno = index + 1
        code = _strip_comment(line)
        if not code.strip():
            continue

        if PRINT_PATTERN.search(code):
            errors.append(f"{filename}:{lineno}: print() not allowed in runtime code")

        if LOGGER_CALL_PATTERN.search(code):
            statement = _logger_statement(lines, index)
            if any(rp in statement for rp in REDACTION_PATTERNS):
                continue
            lowered = statement.lower()
            for keyword in SENSITIVE_KEYWORDS:
                if keyword in lowered:
                    errors.append(
                        f"{filename}:{lineno}: logger call with '{keyword}' "
                        "must use redaction (safe_log_context/redact_value)"
                    )

    return errors


def check_file(filepath: Path) -> list[str]:
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []
    return check_source(content, str(filepath))


def check_tree(src_dir: Path) -> list[str]:
    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))
    return all_errors


def main() -> int:
    src_dir = Path("src")
    if not src_dir.exists():
        src_dir = Path(__file__).parent.parent / "src"
    if not src_dir.exists():
        sys.stderr.write("Error: src directory not found\n")
        return 1

    all_errors = check_tree(src_dir)
    if all_errors:
        sys.stderr.write("Security/PII gate FAILED:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("Security/PII gate passed\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
