"""
Advisory input screening for chat commands.

Every inbound message is checked against a table of (pattern, category)
pairs plus two structural heuristics before any business logic runs.
Numeric and structural validation still happens in each operation.
"""
from __future__ import annotations

import logging
import re
from enum import Enum

from coinbot.core.results import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

MAX_INPUT_LENGTH = 1000
MAX_SPECIAL_CHAR_RATIO = 0.3
MAX_CODE_LENGTH = 50
SANITIZED_MAX_LENGTH = 100

CODE_PATTERN = re.compile(r"[a-zA-Z0-9_-]+")
# characters counted by the obfuscation heuristic; "." is allowed because every command starts with it
SPECIAL_CHAR = re.compile(r"[^\w\s.]")
UNSAFE_DISPLAY_CHARS = re.compile(r"[<>'\"]")


class ThreatCategory(str, Enum):
    CODE_EXECUTION = "code_execution"
    OS_INTROSPECTION = "os_introspection"
    SQL_MUTATION = "sql_mutation"
    MARKUP_INJECTION = "markup_injection"
    PATH_TRAVERSAL = "path_traversal"
    PROTOTYPE_TAMPERING = "prototype_tampering"


_RULES: list[tuple[str, ThreatCategory]] = [
    (r"eval\s*\(", ThreatCategory.CODE_EXECUTION),
    (r"function\s*\(", ThreatCategory.CODE_EXECUTION),
    (r"=>\s*\{", ThreatCategory.CODE_EXECUTION),
    (r"new\s+Function", ThreatCategory.CODE_EXECUTION),
    (r"setTimeout\s*\(", ThreatCategory.CODE_EXECUTION),
    (r"setInterval\s*\(", ThreatCategory.CODE_EXECUTION),
    (r"require\s*\(", ThreatCategory.CODE_EXECUTION),
    (r"import\s+", ThreatCategory.CODE_EXECUTION),
    (r"exec\s*\(", ThreatCategory.CODE_EXECUTION),
    (r"spawn\s*\(", ThreatCategory.CODE_EXECUTION),

    (r"process\.", ThreatCategory.OS_INTROSPECTION),
    (r"global\.", ThreatCategory.OS_INTROSPECTION),
    (r"__dirname", ThreatCategory.OS_INTROSPECTION),
    (r"__filename", ThreatCategory.OS_INTROSPECTION),
    (r"child_process", ThreatCategory.OS_INTROSPECTION),
    (r"fs\.", ThreatCategory.OS_INTROSPECTION),
    (r"path\.", ThreatCategory.OS_INTROSPECTION),
    (r"/etc/passwd", ThreatCategory.OS_INTROSPECTION),
    (r"/proc/version", ThreatCategory.OS_INTROSPECTION),
    (r"cmd\.exe", ThreatCategory.OS_INTROSPECTION),
    (r"powershell", ThreatCategory.OS_INTROSPECTION),

    (r"DROP\s+TABLE", ThreatCategory.SQL_MUTATION),
    (r"DELETE\s+FROM", ThreatCategory.SQL_MUTATION),
    (r"UPDATE\s+.*SET", ThreatCategory.SQL_MUTATION),
    (r"INSERT\s+INTO", ThreatCategory.SQL_MUTATION),
    (r"ALTER\s+TABLE", ThreatCategory.SQL_MUTATION),

    (r"<script", ThreatCategory.MARKUP_INJECTION),
    (r"<iframe", ThreatCategory.MARKUP_INJECTION),
    (r"javascript:", ThreatCategory.MARKUP_INJECTION),
    (r"on\w+\s*=", ThreatCategory.MARKUP_INJECTION),

    (r"\.\./", ThreatCategory.PATH_TRAVERSAL),

    (r"__proto__", ThreatCategory.PROTOTYPE_TAMPERING),
    (r"constructor", ThreatCategory.PROTOTYPE_TAMPERING),
    (r"prototype", ThreatCategory.PROTOTYPE_TAMPERING),
]

THREAT_RULES: list[tuple[re.Pattern[str], ThreatCategory]] = [
    (re.compile(pattern, re.IGNORECASE), category) for pattern, category in _RULES
]

INVALID_INPUT = "invalid_input"


class ThreatFilter:
    def __init__(self, rules: list[tuple[re.Pattern[str], ThreatCategory]] | None = None):
        self.rules = rules if rules is not None else THREAT_RULES

    def match(self, text: str) -> ThreatCategory | None:
        for pattern, category in self.rules:
            if pattern.search(text):
                logger.warning("threat pattern %s (%s) matched", pattern.pattern, category.value)
                return category
        return None

    def inspect(self, text: str) -> Result[str]:
        if not text:
            return Ok(text)

        if self.match(text) is not None:
            return Err(ErrorKind.VALIDATION, INVALID_INPUT)

        ratio = len(SPECIAL_CHAR.findall(text)) / len(text)
        if ratio > MAX_SPECIAL_CHAR_RATIO:
            logger.warning("high special character ratio detected: %.2f", ratio)
            return Err(ErrorKind.VALIDATION, INVALID_INPUT)

        if len(text) > MAX_INPUT_LENGTH:
            logger.warning("oversized input rejected: %d characters", len(text))
            return Err(ErrorKind.VALIDATION, INVALID_INPUT)

        return Ok(text)

    def validate_code_format(self, code: str) -> Result[str]:
        if not code or not isinstance(code, str):
            return Err(ErrorKind.VALIDATION, "Invalid code format")
        if len(code) > MAX_CODE_LENGTH:
            return Err(ErrorKind.VALIDATION, "Code too long")
        if not self.inspect(code).ok:
            return Err(ErrorKind.VALIDATION, "Invalid code format")
        if not CODE_PATTERN.fullmatch(code):
            return Err(ErrorKind.VALIDATION, "Code contains invalid characters")
        return Ok(code)


def sanitize(text: str | None) -> str:
    if not isinstance(text, str):
        return ""
    return UNSAFE_DISPLAY_CHARS.sub("", text.strip())[:SANITIZED_MAX_LENGTH]
