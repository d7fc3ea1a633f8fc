"""Reading simulator settings from libconfig-style files."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, NamedTuple

from .trace import MAX_NR_TIERS, SimConfig

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


class ConfigError(ValueError):
    """The configuration cannot be read or is inconsistent."""


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<comment>\#[^\n]*|//[^\n]*|/\*.*?\*/)
    |(?P<string>"(?:[^"\\]|\\.)*")
    |(?P<float>[-+]?(?:\d+\.\d*|\.\d+)(?:[eE][-+]?\d+)?|[-+]?\d+[eE][-+]?\d+)
    |(?P<int>[-+]?0[xX][0-9A-Fa-f]+L{0,2}|[-+]?\d+L{0,2})
    |(?P<bool>(?i:true|false)\b)
    |(?P<name>[A-Za-z*][-A-Za-z0-9_*]*)
    |(?P<punct>[=:;,{}\[\]()])
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPES = {"\\": "\\", '"': '"', "n": "\n", "r": "\r", "t": "\t", "f": "\f"}


class _Token(NamedTuple):
    kind: str
    text: str
    offset: int


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def _tokenize(text: str) -> list[_Token]:
    tokens = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ConfigError(f"line {_line_of(text, pos)}: syntax error")
        kind = match.lastgroup
        value = match.group()
        if kind == "punct":
            tokens.append(_Token(value, value, pos))
        elif kind not in ("ws", "comment"):
            tokens.append(_Token(kind, value, pos))
        pos = match.end()
    return tokens


def _unescape(literal: str) -> str:
    body = literal[1:-1]
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        nxt = body[i + 1]
        if nxt == "x" and re.fullmatch(r"[0-9A-Fa-f]{2}", body[i + 2 : i + 4]):
            out.append(chr(int(body[i + 2 : i + 4], 16)))
            i += 4
            continue
        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _parse_int(text: str) -> int:
    body = text.rstrip("L")
    return int(body, 16) if "x" in body.lower() else int(body, 10)


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.index = 0

    def _error(self, message: str, token: _Token | None = None) -> ConfigError:
        offset = token.offset if token is not None else len(self.text)
        return ConfigError(f"line {_line_of(self.text, offset)}: {message}")

    def _peek(self) -> _Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _take(self) -> _Token:
        token = self._peek()
        if token is None:
            raise self._error("unexpected end of input")
        self.index += 1
        return token

    def document(self) -> dict[str, Any]:
        return self._settings(None)

    def _settings(self, end: str | None) -> dict[str, Any]:
        result: dict[str, Any] = {}
        while True:
            token = self._peek()
            if token is None:
                if end is None:
                    return result
                raise self._error(f"missing '{end}'")
            if end is not None and token.kind == end:
                return result
            if token.kind != "name":
                raise self._error(f"expected a setting name, got {token.text!r}", token)
            self.index += 1
            sep = self._take()
            if sep.kind not in ("=", ":"):
                raise self._error(f"expected '=' or ':' after {token.text!r}", sep)
            value = self._value()
            if token.text in result:
                raise self._error(f"duplicate setting {token.text!r}", token)
            result[token.text] = value
            after = self._peek()
            if after is not None and after.kind in (";", ","):
                self.index += 1

    def _value(self) -> Any:
        token = self._take()
        kind = token.kind
        if kind == "string":
            parts = [_unescape(token.text)]
            while (nxt := self._peek()) is not None and nxt.kind == "string":
                self.index += 1
                parts.append(_unescape(nxt.text))
            return "".join(parts)
        if kind == "int":
            return _parse_int(token.text)
        if kind == "float":
            return float(token.text)
        if kind == "bool":
            return token.text.lower() == "true"
        if kind == "{":
            group = self._settings("}")
            self._take()
            return group
        if kind == "[":
            items = self._sequence("]")
            if any(isinstance(item, (dict, list)) for item in items):
                raise self._error("arrays may hold only scalar values", token)
            return items
        if kind == "(":
            return self._sequence(")")
        raise self._error(f"unexpected {token.text!r}", token)

    def _sequence(self, close: str) -> list[Any]:
        items: list[Any] = []
        token = self._peek()
        if token is not None and token.kind == close:
            self.index += 1
            return items
        while True:
            items.append(self._value())
            token = self._take()
            if token.kind == close:
                return items
            if token.kind != ",":
                raise self._error(f"expected ',' or '{close}'", token)


def parse_libconfig(text: str) -> dict[str, Any]:
    """Parse libconfig text into nested dictionaries and lists."""
    return _Parser(text).document()


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if not _INT32_MIN <= value <= _INT32_MAX:
        return None
    return value


def _lookup_int(settings: dict[str, Any], name: str) -> int | None:
    return _as_int(settings.get(name))


def _lookup_str(settings: dict[str, Any], name: str) -> str | None:
    value = settings.get(name)
    return value if isinstance(value, str) else None


def _tier_values(settings: dict[str, Any], name: str, nr_tiers: int) -> list[int] | None:
    if name not in settings:
        return None
    value = settings[name]
    if isinstance(value, dict):
        elements = list(value.values())
    elif isinstance(value, list):
        elements = value
    else:
        elements = []
    if len(elements) != nr_tiers:
        raise ConfigError(f"{name}'s count is not equal to nr_tiers!")
    if len(elements) > MAX_NR_TIERS:
        raise ConfigError(f"{name} names more than {MAX_NR_TIERS} tiers")
    return [_as_int(element) or 0 for element in elements]


def _derive_file_names(config: SimConfig) -> None:
    trace = config.trace_file
    last_dot = trace.rfind(".")
    stem = trace[:last_dot] if last_dot != -1 else trace
    base = stem[stem.rfind("/") + 1 :]
    ratio = config.trace_sampling_ratio
    config.sampled_file = f"{stem}.ratio{ratio}.sampled"
    config.sched_file = f"./result/{base}.ratio{ratio}"


def load_config(path: str | Path) -> SimConfig:
    """Read a simulator configuration file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"{path}: cannot read configuration: {exc}") from exc
    try:
        settings = parse_libconfig(text)
    except ConfigError as exc:
        raise ConfigError(f"{path}: {exc}") from exc

    config = SimConfig()
    if (value := _lookup_str(settings, "trace_file")) is not None:
        config.trace_file = value
    if (number := _lookup_int(settings, "trace_sampling_ratio")) is not None:
        config.trace_sampling_ratio = number
    if (value := _lookup_str(settings, "sched_file")) is not None:
        config.sched_file = value
    _derive_file_names(config)

    if (number := _lookup_int(settings, "nr_tiers")) is not None:
        config.nr_tiers = number
    if (number := _lookup_int(settings, "tier_cap_scale")) is not None:
        config.tier_cap_scale = number

    for name, target in (
        ("tier_cap_ratio", config.tier_cap_ratio),
        ("tier_lat_loads", config.tier_lat_loads),
        ("tier_lat_stores", config.tier_lat_stores),
    ):
        values = _tier_values(settings, name, config.nr_tiers)
        if values is not None:
            target[: len(values)] = values

    # The 4KB latencies are scaled by the overhead known at this point; the
    # overhead itself is read further below.
    scale = int(config.mig_overhead / 10000)
    for name, target in (
        ("tier_lat_4KB_reads", config.tier_lat_4kb_reads),
        ("tier_lat_4KB_writes", config.tier_lat_4kb_writes),
    ):
        values = _tier_values(settings, name, config.nr_tiers)
        if values is not None:
            target[: len(values)] = [value * scale for value in values]

    for name in (
        "mig_period", "mig_traffic", "mig_overhead",
        "do_an", "do_at", "do_mtm", "do_migopt", "do_analysis",
    ):
        if (number := _lookup_int(settings, name)) is not None:
            setattr(config, name, number)
    return config


def compute_tier_caps(config: SimConfig) -> list[int]:
    """Share the scaled page count out among the tiers by their ratios."""
    config.total_cap = config.nr_sampled_pages * (100 + config.tier_cap_scale) // 100
    ratios = config.tier_cap_ratio[: config.nr_tiers]
    total_ratio = sum(ratios)
    if ratios and total_ratio == 0:
        raise ConfigError("tier capacity ratios sum to zero")
    for tier, ratio in enumerate(ratios):
        cap = config.total_cap * ratio // total_ratio
        config.tier_cap[tier] = cap
        if cap <= 0:
            raise ConfigError(f"Tier {tier} capacity is less than 0!")
    return config.tier_cap[: config.nr_tiers]


def format_config(config: SimConfig) -> str:
    """Readable listing of every setting."""
    count = config.nr_tiers

    def row(values: list[int]) -> str:
        return "".join(f"{value} " for value in values[:count])

    lines = [
        "Configuration:",
        f"Trace File: {config.trace_file}",
        f"Sampled File: {config.sampled_file}",
        f"Sched File: {config.sched_file}",
        f"Number of Original Pages: {config.nr_org_pages}",
        f"Number of Original Traces: {config.nr_org_traces}",
        f"Trace Sampling Ratio: {config.trace_sampling_ratio}",
        f"Number of Sampled Pages: {config.nr_sampled_pages}",
        f"Number of Sampled Traces: {config.nr_sampled_traces}",
        f"Number of Tiers: {config.nr_tiers}",
        f"Tier Capacity Scale: {config.tier_cap_scale}",
        "Tier Capacity Ratio: " + row(config.tier_cap_ratio),
        f"Total Capacity: {config.total_cap}",
        "Tier Capacities: " + row(config.tier_cap),
        "Tier Load Latencies: " + row(config.tier_lat_loads),
        "Tier Store Latencies: " + row(config.tier_lat_stores),
        "Tier 4KB Read Latencies: " + row(config.tier_lat_4kb_reads),
        "Tier 4KB Write Latencies: " + row(config.tier_lat_4kb_writes),
        f"Migration Period: {config.mig_period}",
        f"Migration Traffic: {config.mig_traffic}",
        f"Migration Overhead: {config.mig_overhead}",
        f"Do AutoNUMA: {config.do_an}",
        f"Do AutoTiering: {config.do_at}",
        f"Do MTM: {config.do_mtm}",
        f"Do MigOpt: {config.do_migopt}",
        f"Do Analysis: {config.do_analysis}",
    ]
    return "\n".join(lines)