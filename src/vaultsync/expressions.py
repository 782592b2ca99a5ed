# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/expressions.py

"""Field-mapping expressions.

Catalog mappings, flag assignments and copy actions are written as small
expressions evaluated against a context of nested mappings:

    =<literal>              literal null/true/false/number/string
    "text" / 'text'         quoted string, backslash escapes removed
    null                    None
    $src.size               dot-path lookup, missing segments give None
    $func.name(a, b, ...)   call into a closed set of built-ins
    anything else           the trimmed text itself

Built-ins: easy_checksum(mtime, size), vault_name(template?),
vault_path(stored_path, stored_file?), now().
"""

import hashlib
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import blake3

from vaultsync.exceptions import ConfigurationError

FUNC_RE = re.compile(r"^\$func\.([A-Za-z0-9_]+)\((.*)\)$", re.DOTALL)
PLACEHOLDER_RE = re.compile(r"\{([^}]+)\}")
SEPARATORS_RE = re.compile(r"[\\/]+")
UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")
ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
LITERAL_NUMBER_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")

# Variable-length digests (shake_*) need an explicit length and are excluded
FIXED_DIGESTS = frozenset(
    name for name in hashlib.algorithms_guaranteed if not name.startswith("shake")
)
DEFAULT_CHECKSUM = "sha256"


def now_iso() -> str:
    """Current local time, ISO-8601 with offset."""
    return datetime.now().astimezone().isoformat(timespec="seconds")


def sanitize_filename(value: str) -> str:
    """Make a string safe to use as a single path component.

    Separators and any character outside [A-Za-z0-9._-] become "_", then
    leading and trailing ".", "_", "-" and spaces are stripped. Applying it
    twice gives the same result as applying it once.
    """
    value = SEPARATORS_RE.sub("_", value)
    value = UNSAFE_RE.sub("_", value)
    return value.strip(" ._-")


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value)


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _placeholder_text(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def placeholder_values(context: Mapping[str, Any], row: Optional[Mapping[str, Any]] = None) -> Dict[str, str]:
    """Scalar fields usable as {placeholders}: src first, then row."""
    values: Dict[str, str] = {}
    scopes = [context.get("src"), context.get("row"), row]
    for scope in scopes:
        if not isinstance(scope, Mapping):
            continue
        for key, value in scope.items():
            if _is_scalar(value):
                values[str(key)] = _placeholder_text(value)
    return values


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Replace {name} with values[name]; unknown placeholders are kept."""
    return PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def parse_literal(literal: str) -> Any:
    literal = literal.strip()
    if literal == "":
        return ""
    lowered = literal.lower()
    if lowered == "null":
        return None
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if LITERAL_NUMBER_RE.fullmatch(literal):
        if "." in literal:
            return float(literal)
        if "e" in lowered:
            return int(float(literal))
        return int(literal)
    return literal


def split_arguments(text: str) -> List[str]:
    """Split a call's argument list on top-level commas.

    Parenthesis depth is tracked so nested calls stay whole; commas inside
    quoted strings are kept as well.
    """
    text = text.strip()
    if not text:
        return []

    parts: List[str] = []
    current: List[str] = []
    depth = 0
    quote: Optional[str] = None
    escaped = False
    for char in text:
        if quote is not None:
            current.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    if current:
        parts.append("".join(current))
    return parts


def resolve_variable(path: str, context: Mapping[str, Any]) -> Any:
    value: Any = context
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


class ExpressionEvaluator:
    """Evaluates mapping expressions for one vault."""

    def __init__(
        self,
        vault_base: Path,
        filename_pattern: str = "{file_name}",
        checksum_algo: str = DEFAULT_CHECKSUM,
        clock: Callable[[], str] = now_iso,
    ):
        self.vault_base = Path(vault_base)
        self.filename_pattern = filename_pattern or "{file_name}"
        self.checksum_algo = (checksum_algo or DEFAULT_CHECKSUM).strip().lower()
        self.clock = clock
        self._functions: Dict[str, Callable[[List[Any], Mapping[str, Any]], Any]] = {
            "easy_checksum": self._func_easy_checksum,
            "vault_name": self._func_vault_name,
            "vault_path": self._func_vault_path,
            "now": self._func_now,
        }

    @classmethod
    def for_vault(cls, vault, vault_base: Path, clock: Callable[[], str] = now_iso) -> "ExpressionEvaluator":
        """Build an evaluator from a VaultConfig whose base path is already resolved."""
        return cls(
            vault_base=vault_base,
            filename_pattern=vault.filename_pattern,
            checksum_algo=vault.checksum.algo,
            clock=clock,
        )

    @property
    def functions(self) -> List[str]:
        return sorted(self._functions)

    def evaluate(self, expression: Any, context: Mapping[str, Any]) -> Any:
        if expression is None or not isinstance(expression, str):
            return expression
        expr = expression.strip()
        if expr == "":
            return ""

        if expr.startswith("="):
            return parse_literal(expr[1:])

        if expr == "null":
            return None

        if len(expr) >= 2 and expr[0] == expr[-1] and expr[0] in ("'", '"'):
            return ESCAPE_RE.sub(r"\1", expr[1:-1])

        match = FUNC_RE.match(expr)
        if match:
            name = match.group(1).lower()
            args = [self.evaluate(arg, context) for arg in split_arguments(match.group(2))]
            return self.call(name, args, context)

        if expr.startswith("$"):
            return resolve_variable(expr[1:], context)

        return expr

    def call(self, name: str, args: List[Any], context: Mapping[str, Any]) -> Any:
        function = self._functions.get(name.lower())
        if function is None:
            raise ConfigurationError(f"Unknown function $func.{name}")
        return function(args, context)

    # -- built-in helpers, also used directly by the catalog engine ---------

    def checksum(self, mtime: Any, size: Any) -> str:
        data = f"{_text(mtime)}|{_text(size)}"
        algo = self.checksum_algo
        if algo == "mtime_size":
            return data
        payload = data.encode("utf-8")
        if algo == "mtime_size_xxh64":
            # fast 64-bit fingerprint
            return blake3.blake3(payload).hexdigest(length=8)
        if algo == "blake3":
            return blake3.blake3(payload).hexdigest()
        if algo in FIXED_DIGESTS:
            return hashlib.new(algo, payload).hexdigest()
        return hashlib.sha256(payload).hexdigest()

    def vault_filename(
        self,
        context: Mapping[str, Any],
        row: Optional[Mapping[str, Any]] = None,
        template: Optional[str] = None,
    ) -> str:
        """Render, sanitize and suffix a vault filename."""
        pattern = template if template else self.filename_pattern
        value = sanitize_filename(render_template(pattern, placeholder_values(context, row)))

        src = context.get("src")
        src = src if isinstance(src, Mapping) else {}
        if not value:
            value = sanitize_filename(_text(src.get("name_stem"))) or "file"

        ext = sanitize_filename(_text(src.get("ext")))
        if ext and not value.lower().endswith("." + ext.lower()):
            value = f"{value}.{ext}"
        return value

    def vault_path(self, stored_path: Any, stored_file: Any, context: Mapping[str, Any]) -> str:
        subpath = _text(stored_path).strip()
        filename = _text(stored_file)
        if filename == "":
            row = context.get("row")
            filename = self.vault_filename(context, row if isinstance(row, Mapping) else None)
        destination = self.vault_base
        if subpath:
            destination = destination / subpath.lstrip("/\\")
        return str(destination / filename)

    def now(self) -> str:
        return self.clock()

    # -- dispatch table entries ----------------------------------------------

    def _func_easy_checksum(self, args: List[Any], context: Mapping[str, Any]) -> str:
        mtime = args[0] if len(args) > 0 else None
        size = args[1] if len(args) > 1 else None
        return self.checksum(mtime, size)

    def _func_vault_name(self, args: List[Any], context: Mapping[str, Any]) -> str:
        template = _text(args[0]) if args else ""
        row = context.get("row")
        return self.vault_filename(context, row if isinstance(row, Mapping) else None, template or None)

    def _func_vault_path(self, args: List[Any], context: Mapping[str, Any]) -> str:
        stored_path = args[0] if len(args) > 0 else None
        stored_file = args[1] if len(args) > 1 else None
        return self.vault_path(stored_path, stored_file, context)

    def _func_now(self, args: List[Any], context: Mapping[str, Any]) -> str:
        return self.now()
