"""Structured access to SuiteCRM's PHP configuration files.

SuiteCRM keeps its configuration in ``config.php`` as a PHP array literal
assigned to ``$sugar_config``, written with PHP's ``var_export`` layout.
``config_override.php`` uses indexed assignments instead
(``$sugar_config['a']['b'] = 'c';``). This module parses both forms into
plain dictionaries and writes them back in the ``var_export`` layout, so
keys can be read and patched, or added, without line-oriented substitution.
"""

import os
import re
import tempfile
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from suitecrmbootstrap.constants import FILE_MODE, SILENT_INSTALL_VARIABLE, SUGAR_CONFIG_VARIABLE
from suitecrmbootstrap.errors import ConfigFileError
from suitecrmbootstrap.models import DatabaseEndpoint, Settings, is_boolean_yes
from suitecrmbootstrap.services.filesystem import am_i_root

Token = Tuple[str, Any]

_TOKEN_PATTERNS = [
    ("OPEN", r"<\?php\b"),
    ("CLOSE", r"\?>"),
    ("COMMENT", r"//[^\n]*|\#[^\n]*|/\*.*?\*/"),
    ("SPACE", r"\s+"),
    ("VAR", r"\$[A-Za-z_][A-Za-z0-9_]*"),
    ("STR1", r"'(?:[^'\\]|\\.)*'"),
    ("STR2", r'"(?:[^"\\]|\\.)*"'),
    ("NUM", r"-?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?"),
    ("IDENT", r"[A-Za-z_][A-Za-z0-9_]*"),
    ("ARROW", r"=>"),
    ("PUNCT", r"[=;()\[\],]"),
]
_TOKEN_RE = re.compile(
    "|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_PATTERNS), re.DOTALL
)
_INT_KEY_RE = re.compile(r"^(0|-?[1-9][0-9]*)$")
_DOUBLE_QUOTE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "v": "\v",
    "f": "\f",
    "e": "\x1b",
    "0": "\0",
    "\\": "\\",
    "$": "$",
    '"': '"',
}


def _tokenize(text: str) -> Iterator[Token]:
    position = 0
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if match is None:
            snippet = text[position : position + 20]
            raise ConfigFileError(f"Unexpected content in PHP configuration: {snippet!r}")
        kind = match.lastgroup
        value = match.group()
        position = match.end()

        if kind in ("SPACE", "COMMENT"):
            continue
        if kind == "STR1":
            yield "STR", re.sub(r"\\([\\'])", r"\1", value[1:-1])
        elif kind == "STR2":
            yield "STR", re.sub(
                r"\\(.)",
                lambda m: _DOUBLE_QUOTE_ESCAPES.get(m.group(1), m.group(0)),
                value[1:-1],
            )
        elif kind == "NUM":
            is_float = any(char in value for char in ".eE")
            yield "NUM", float(value) if is_float else int(value)
        elif kind == "IDENT":
            yield "IDENT", value.lower()
        elif kind == "VAR":
            yield "VAR", value[1:]
        else:
            yield kind, value


def _normalize_key(key: Any) -> Any:
    if isinstance(key, bool):
        return int(key)
    if key is None:
        return ""
    if isinstance(key, float):
        return int(key)
    if isinstance(key, str) and _INT_KEY_RE.match(key):
        return int(key)
    return key


class _Parser:
    def __init__(self, text: str):
        self.tokens: List[Token] = list(_tokenize(text))
        self.index = 0

    def peek(self) -> Optional[Token]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def next(self) -> Token:
        token = self.peek()
        if token is None:
            raise ConfigFileError("Unexpected end of PHP configuration.")
        self.index += 1
        return token

    def expect(self, kind: str, value: Any = None) -> Token:
        token = self.next()
        if token[0] != kind or (value is not None and token[1] != value):
            expected = value if value is not None else kind
            raise ConfigFileError(f"Expected {expected!r} in PHP configuration, found {token[1]!r}.")
        return token

    def accept(self, kind: str, value: Any = None) -> bool:
        token = self.peek()
        if token is not None and token[0] == kind and (value is None or token[1] == value):
            self.index += 1
            return True
        return False

    def document(self) -> Dict[str, Any]:
        variables: Dict[str, Any] = {}
        self.expect("OPEN")
        while self.peek() is not None and not self.accept("CLOSE"):
            self.statement(variables)
        return variables

    def statement(self, variables: Dict[str, Any]):
        name = self.expect("VAR")[1]
        path: List[Any] = []
        while self.accept("PUNCT", "["):
            if self.accept("PUNCT", "]"):
                path.append(None)
                continue
            path.append(_normalize_key(self.value()))
            self.expect("PUNCT", "]")
        self.expect("PUNCT", "=")
        value = self.value()
        self.expect("PUNCT", ";")

        if not path:
            variables[name] = value
            return

        container = variables.setdefault(name, {})
        for key in path[:-1]:
            if not isinstance(container, dict):
                raise ConfigFileError(f"Cannot index scalar value of ${name}.")
            if key is None:
                key = _next_index(container)
            container = container.setdefault(key, {})
        if not isinstance(container, dict):
            raise ConfigFileError(f"Cannot index scalar value of ${name}.")
        last_key = path[-1] if path[-1] is not None else _next_index(container)
        container[last_key] = value

    def value(self) -> Any:
        kind, value = self.next()
        if kind in ("STR", "NUM"):
            return value
        if kind == "IDENT":
            if value == "true":
                return True
            if value == "false":
                return False
            if value == "null":
                return None
            if value == "array":
                self.expect("PUNCT", "(")
                return self.array_items(")")
            raise ConfigFileError(f"Unsupported PHP identifier in configuration: {value!r}")
        if kind == "PUNCT" and value == "[":
            return self.array_items("]")
        raise ConfigFileError(f"Unexpected token in PHP configuration: {value!r}")

    def array_items(self, closing: str) -> Dict[Any, Any]:
        items: Dict[Any, Any] = {}
        while not self.accept("PUNCT", closing):
            first = self.value()
            if self.accept("ARROW"):
                items[_normalize_key(first)] = self.value()
            else:
                items[_next_index(items)] = first
            if not self.accept("PUNCT", ","):
                self.expect("PUNCT", closing)
                break
        return items


def _next_index(items: Mapping[Any, Any]) -> int:
    int_keys = [key for key in items if isinstance(key, int)]
    return max(int_keys) + 1 if int_keys else 0


def parse_php_config(text: str) -> Dict[str, Any]:
    """Parse a PHP configuration file into ``{variable_name: value}``."""
    return _Parser(text).document()


def _export_scalar(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "NULL"
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def _export(value: Any, indent: str) -> str:
    if isinstance(value, (list, tuple)):
        value = dict(enumerate(value))
    if not isinstance(value, Mapping):
        return _export_scalar(value)

    lines = ["array ("]
    child_indent = indent + "  "
    for key, item in value.items():
        prefix = f"{child_indent}{_export_scalar(_normalize_key(key))} =>"
        if isinstance(item, (Mapping, list, tuple)):
            lines.append(f"{prefix} ")
            lines.append(f"{child_indent}{_export(item, child_indent)},")
        else:
            lines.append(f"{prefix} {_export_scalar(item)},")
    lines.append(f"{indent})")
    return "\n".join(lines)


def dump_php_config(variables: Mapping[str, Any]) -> str:
    """Serialize variables in the ``var_export`` layout SuiteCRM writes."""
    parts = ["<?php"]
    for name, value in variables.items():
        parts.append(f"${name} = {_export(value, '')};")
    return "\n".join(parts) + "\n"


class PhpConfigFile:
    """Read and patch one PHP configuration file."""

    def __init__(self, path: str, variable: str = SUGAR_CONFIG_VARIABLE, logger=None):
        self.path = path
        self.variable = variable
        self.logger = logger

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def load(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as file_obj:
                text = file_obj.read()
        except OSError as exc:
            raise ConfigFileError(f"Could not read configuration file '{self.path}': {exc}") from exc

        try:
            return parse_php_config(text)
        except ConfigFileError as exc:
            raise ConfigFileError(f"Invalid configuration file '{self.path}': {exc}") from exc

    def get(self, *keys: Any) -> Any:
        value: Any = self.load().get(self.variable)
        if value is None:
            raise ConfigFileError(f"Variable ${self.variable} not found in '{self.path}'.")
        for key in keys:
            if not isinstance(value, dict) or _normalize_key(key) not in value:
                path = "".join(f"['{k}']" for k in keys)
                raise ConfigFileError(f"Key ${self.variable}{path} not found in '{self.path}'.")
            value = value[_normalize_key(key)]
        return value

    def set(self, keys: Sequence[Any], value: Any):
        if not keys:
            raise ConfigFileError("At least one key is required to set a configuration value.")

        variables = self.load() if self.exists() else {}
        container = variables.setdefault(self.variable, {})
        for key in keys[:-1]:
            child = container.get(_normalize_key(key))
            if not isinstance(child, dict):
                child = {}
                container[_normalize_key(key)] = child
            container = child
        container[_normalize_key(keys[-1])] = value

        if self.logger:
            self.logger.debug("Setting %s in SuiteCRM configuration", "/".join(map(str, keys)))
        self.write(variables)

    def write(self, variables: Mapping[str, Any]):
        # A persisted config.php is a symlink into the volume; replace its target.
        target = os.path.realpath(self.path)
        directory = os.path.dirname(target) or "."
        mode = FILE_MODE
        owner = None
        if os.path.exists(target):
            current = os.stat(target)
            mode = current.st_mode & 0o777
            owner = (current.st_uid, current.st_gid)

        fd, temp_path = tempfile.mkstemp(prefix=".config-", suffix=".php", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(dump_php_config(variables))
            os.chmod(temp_path, mode)
            if owner is not None and am_i_root():
                os.chown(temp_path, *owner)
            os.replace(temp_path, target)
        except OSError as exc:
            raise ConfigFileError(f"Could not write configuration file '{self.path}': {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass


def build_db_seed_config(endpoint: DatabaseEndpoint) -> Dict[str, Any]:
    """Minimal ``config.php`` that lets SuiteCRM reach an existing database."""
    return {
        SUGAR_CONFIG_VARIABLE: {
            "dbconfig": {
                "db_host_name": endpoint.host,
                "db_host_instance": "",
                "db_user_name": endpoint.user,
                "db_password": endpoint.password,
                "db_name": endpoint.name,
                "db_type": "mysql",
                "db_port": endpoint.port,
                "db_manager": "MysqliManager",
            },
        }
    }


def build_silent_install_config(settings: Settings) -> Dict[str, Any]:
    """``config_si.php`` consumed by SuiteCRM's silent installer."""
    return {
        SILENT_INSTALL_VARIABLE: {
            "setup_site_url": f"{settings.url_protocol}://{settings.host}",
            "setup_system_name": "SuiteCRM",
            "setup_db_type": "mysql",
            "setup_db_host_name": settings.database_host,
            "setup_db_port_num": settings.database_port,
            "setup_db_database_name": settings.database_name,
            "setup_db_admin_user_name": settings.database_user,
            "setup_db_admin_password": settings.database_password,
            "setup_db_create_database": False,
            "setup_db_drop_tables": False,
            "setup_db_pop_demo_data": False,
            "setup_site_admin_user_name": settings.username,
            "setup_site_admin_password": settings.password,
            "setup_site_admin_email": settings.email,
            "setup_site_admin_last_name": settings.last_name,
            "setup_site_sugarbeet_automatic_checks": False,
            "setup_site_specify_guid": False,
            "setup_site_session_path": "",
            "setup_site_log_dir": ".",
            "demoData": "no",
            "default_currency_iso4217": "USD",
            "default_currency_name": "US Dollars",
            "default_currency_significant_digits": "2",
            "default_currency_symbol": "$",
            "default_date_format": "Y-m-d",
            "default_time_format": "H:i",
            "default_decimal_seperator": ".",
            "default_export_charset": "UTF-8",
            "default_language": "en_us",
            "default_locale_name_format": "s f l",
            "default_number_grouping_seperator": ",",
            "export_delimiter": ",",
            "verify_client_ip": is_boolean_yes(settings.validate_user_ip),
        }
    }
