#!/usr/bin/env python3
"""PII gate for the inbox service sources.

Fails if:
- print( found in runtime code (src/**)
- A logger call names customer data (payload, text, phone, token) without
  going through safe_log_context/redact_value on the same line

Usage:
    python scripts/gate_security_pii.py [SRC_DIR]
"""

import re
import sys
from pathlib import Path

SENSITIVE_KEYWORDS = (
    "payload",
    "body_bytes",
    "request.json",
    "inbound.text",
    "message_text",
    "display_name",
    "phone",
    "access_token",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(
    r"logger\.(debug|info|warning|error|critical|exception)\s*\("
)

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
    "hash_identifier",
)


def check_source(source: str, label: str) -> list[str]:
    """Check one file's text. Returns a list of `label:lineno: reason` strings."""
    errors = []

    for lineno, line in enumerate(source.splitlines(), start=1):
        code = line.split("#", 1)[0]
        if not code.strip():
            continue

        if PRINT_PATTERN.search(code):
            errors.append(f"{label}:{lineno}: print() not allowed in runtime code")

        if LOGGER_CALL_PATTERN.search(code):
            lowered = code.lower()
            if any(rp in code for rp in REDACTION_PATTERNS):
                continue
            for keyword in SENSITIVE_KEYWORDS:
                if keyword in lowered:
                    errors.append(
                        f"{label}:{lineno}: logger call with '{keyword}' "
                        "must use redaction (safe_log_context/redact_value)"
                    )

    return errors


def check_file(filepath: Path) -> list[str]:
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []
    return check_source(content, str(filepath))


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    src_dir = Path(args[0]) if args else Path(__file__).parent.parent / "src"

    if not src_dir.exists():
        sys.stderr.write(f"Error: {src_dir} not found\n")
        return 1

    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))

    if all_errors:
        sys.stderr.write("PII gate FAILED:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("PII gate passed\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
