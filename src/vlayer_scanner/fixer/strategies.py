"""Line-local fix strategies.

A strategy takes one source line and returns the rewritten line, or None
when it cannot transform that line. Strategies never look beyond the line
they are given.
"""

import re
from typing import Callable, Optional

from ..models import FixType
from ..scanners.custom import CUSTOM_FIX_PREFIX, CustomRuleFix

Strategy = Callable[[str, str], Optional[str]]

PYTHON_EXTENSIONS = (".py", ".pyw")

_VAR_NAME_RE = re.compile(r"(?:const|let|var)\s+(\w+)|(\w+)\s*[:=]")
_CAMEL_BOUNDARY_RE = re.compile(r"([a-z0-9])([A-Z])")

_TEMPLATE_CALL_RE = re.compile(r"(\w+)\s*\(\s*`([^`]*)`\s*\)")
_INTERPOLATION_RE = re.compile(r"\$\{([^}]+)\}")
_CONCAT_CALL_RE = re.compile(r"""(\w+)\s*\(\s*"([^"]+)"\s*\+\s*([\w.]+)\s*\+\s*"([^"]*)"\s*\)""")

_PASSWORD_RE = re.compile(r"""(password|passwd|pwd)\s*[:=]\s*(['"`])[^'"`]+\2""", re.IGNORECASE)
_SECRET_RE = re.compile(r"""(secret)\s*[:=]\s*(['"`])[^'"`]+\2""", re.IGNORECASE)
_API_KEY_RE = re.compile(r"""(api[_-]?key|apikey)\s*[:=]\s*(['"`])[^'"`]+\2""", re.IGNORECASE)

_JS_LOG_RE = re.compile(r"^(\s*)console\.(log|info|debug|warn|error)\s*\(")
_PY_LOG_RE = re.compile(r"^(\s*)(print|logging\.\w+|logger\.\w+)\s*\(")

_INSECURE_URL_RE = re.compile(r"http://(?!localhost\b|127\.0\.0\.1\b)")
_INNER_HTML_RE = re.compile(r"\.innerHTML\s*=")
_ENCRYPT_DISABLED_RE = re.compile(r"(encrypt(?:ed|ion)?\s*[:=]\s*)(false|False)")

_JS_REPLACEMENT_RE = re.compile(r"\$(\d|&)")


def language_for(file_path: str) -> str:
    """'python' for Python sources, 'javascript' for everything else."""
    return "python" if file_path.lower().endswith(PYTHON_EXTENSIONS) else "javascript"


def to_env_name(name: str) -> str:
    """dbPassword -> DB_PASSWORD"""
    return re.sub(r"[-\s]+", "_", _CAMEL_BOUNDARY_RE.sub(r"\1_\2", name)).upper()


def env_lookup(name: str, language: str) -> str:
    if language == "python":
        return f'os.environ["{name}"]'
    return f"process.env.{name}"


def _extract_var_name(line: str) -> Optional[str]:
    match = _VAR_NAME_RE.search(line)
    if match:
        return match.group(1) or match.group(2)
    return None


def _replace_with_env(line: str, language: str, regex: re.Pattern, default_name: str) -> Optional[str]:
    match = regex.search(line)
    if not match:
        return None
    var_name = _extract_var_name(line)
    env_name = to_env_name(var_name) if var_name else default_name
    return line[:match.start()] + f"{match.group(1)} = {env_lookup(env_name, language)}" + line[match.end():]


def fix_sql_template(line: str, language: str) -> Optional[str]:
    """query(`... ${id} ...`) -> query('... ? ...', [id])"""
    match = _TEMPLATE_CALL_RE.search(line)
    if not match or not _INTERPOLATION_RE.search(match.group(2)):
        return None

    func_name, template = match.group(1), match.group(2)
    params = [m.strip() for m in _INTERPOLATION_RE.findall(template)]
    sql = _INTERPOLATION_RE.sub("?", template)
    return line[:match.start()] + f"{func_name}('{sql}', [{', '.join(params)}])" + line[match.end():]


def fix_sql_concat(line: str, language: str) -> Optional[str]:
    """query("... '" + id + "' ...") -> query('... ? ...', [id])

    Only the single-variable form is handled.
    """
    match = _CONCAT_CALL_RE.search(line)
    if not match:
        return None

    func_name, before, variable, after = match.groups()
    before = re.sub(r"'?\s*$", "", before)
    after = re.sub(r"^\s*'?", "", after)
    sql = f"{before}?{after}"
    return line[:match.start()] + f"{func_name}('{sql}', [{variable}])" + line[match.end():]


def fix_hardcoded_password(line: str, language: str) -> Optional[str]:
    return _replace_with_env(line, language, _PASSWORD_RE, "PASSWORD")


def fix_hardcoded_secret(line: str, language: str) -> Optional[str]:
    return _replace_with_env(line, language, _SECRET_RE, "SECRET")


def fix_api_key(line: str, language: str) -> Optional[str]:
    return _replace_with_env(line, language, _API_KEY_RE, "API_KEY")


def fix_phi_console_log(line: str, language: str) -> Optional[str]:
    """Comment the logging statement out, keeping it for review."""
    if language == "python":
        match = _PY_LOG_RE.match(line)
        marker = "#"
    else:
        match = _JS_LOG_RE.match(line)
        marker = "//"
    if not match:
        return None
    return f"{match.group(1)}{marker} [VLAYER] PHI logging removed - review needed: {line.strip()}"


def fix_http_url(line: str, language: str) -> Optional[str]:
    fixed = _INSECURE_URL_RE.sub("https://", line)
    return fixed if fixed != line else None


def fix_inner_html(line: str, language: str) -> Optional[str]:
    if not _INNER_HTML_RE.search(line):
        return None
    return _INNER_HTML_RE.sub(".textContent =", line, count=1)


def fix_backup_unencrypted(line: str, language: str) -> Optional[str]:
    match = _ENCRYPT_DISABLED_RE.search(line)
    if not match:
        return None
    enabled = "True" if match.group(2) == "False" else "true"
    return line[:match.start()] + match.group(1) + enabled + line[match.end():]


def _weak_hash(name: str) -> Strategy:
    regex = re.compile(rf"\b{name}\s*\(", re.IGNORECASE)

    def fix(line: str, language: str) -> Optional[str]:
        if not regex.search(line):
            return None
        return regex.sub("sha256(", line)

    fix.__name__ = f"fix_weak_hash_{name}"
    return fix


FIX_STRATEGIES: dict[str, Strategy] = {
    FixType.sql_injection_template.value: fix_sql_template,
    FixType.sql_injection_concat.value: fix_sql_concat,
    FixType.hardcoded_password.value: fix_hardcoded_password,
    FixType.hardcoded_secret.value: fix_hardcoded_secret,
    FixType.api_key_exposed.value: fix_api_key,
    FixType.phi_console_log.value: fix_phi_console_log,
    FixType.http_url.value: fix_http_url,
    FixType.innerhtml_unsanitized.value: fix_inner_html,
    FixType.backup_unencrypted.value: fix_backup_unencrypted,
    FixType.weak_hash_md5.value: _weak_hash("md5"),
    FixType.weak_hash_sha1.value: _weak_hash("sha1"),
}


def _expand_replacement(template: str, match: re.Match) -> str:
    """Expand $1..$9 and $& in a custom rule replacement."""
    def group(m: re.Match) -> str:
        ref = m.group(1)
        if ref == "&":
            return match.group(0)
        index = int(ref)
        if index > (match.re.groups or 0):
            return m.group(0)
        return match.group(index) or ""

    return _JS_REPLACEMENT_RE.sub(group, template)


def apply_custom_fix(line: str, fix: CustomRuleFix, pattern: str, flags: int = 0) -> Optional[str]:
    """Apply a custom rule's replace/remove/wrap to the first match on the line."""
    match = re.search(pattern, line, flags & ~re.MULTILINE)
    if not match:
        return None

    if fix.type == "replace":
        replacement = _expand_replacement(fix.replacement or "", match)
    elif fix.type == "remove":
        replacement = ""
    else:
        replacement = f"{fix.wrapper.before}{match.group(0)}{fix.wrapper.after}"

    return line[:match.start()] + replacement + line[match.end():]


def apply_fix_strategy(
    line: str,
    fix_type: str,
    file_path: str = "",
    *,
    custom_fixes: Optional[dict[str, CustomRuleFix]] = None,
    pattern: Optional[str] = None,
    flags: int = 0,
) -> Optional[str]:
    """Rewrite one line with the strategy registered for ``fix_type``.

    Returns None when there is no such strategy or it does not apply.
    """
    if fix_type.startswith(CUSTOM_FIX_PREFIX):
        fix = (custom_fixes or {}).get(fix_type)
        if fix is None or pattern is None:
            return None
        return apply_custom_fix(line, fix, pattern, flags)

    strategy = FIX_STRATEGIES.get(fix_type)
    if strategy is None:
        return None
    return strategy(line, language_for(file_path))
