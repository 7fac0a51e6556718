"""Validation case definitions and response expectations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, List, Mapping, Optional, Tuple

_NO_BODY = object()

ResponsePredicate = Callable[["ResponseSnapshot"], bool]


@dataclass(frozen=True)
class ResponseSnapshot:
    """What a validation request got back."""

    status: int
    text: str
    headers: Mapping[str, str] = field(default_factory=dict)
    json: Any = None
    elapsed_ms: float = 0.0


def parse_status_spec(raw: Any) -> Optional[FrozenSet[int]]:
    """
    Turn a status expectation into the set of accepted codes.

    Accepts an int (``201``), a class string (``"2xx"``), or a list mixing both.
    """
    if raw is None:
        return None
    items = raw if isinstance(raw, (list, tuple, set, frozenset)) else [raw]
    accepted: set[int] = set()
    for item in items:
        if isinstance(item, bool):
            raise ValueError(f"Invalid status expectation: {item!r}")
        if isinstance(item, int):
            accepted.add(item)
            continue
        text = str(item).strip().lower()
        if len(text) == 3 and text.endswith("xx") and text[0].isdigit():
            base = int(text[0]) * 100
            accepted.update(range(base, base + 100))
        elif text.isdigit():
            accepted.add(int(text))
        else:
            raise ValueError(f"Invalid status expectation: {item!r}")
    if not accepted:
        raise ValueError("Status expectation must name at least one status")
    return frozenset(accepted)


def json_contains(actual: Any, expected: Any) -> bool:
    """True when *expected* is a subset of *actual*.

    Objects match key by key (extra keys in *actual* are allowed); lists and
    scalars must be equal element by element.
    """
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return False
        return all(key in actual and json_contains(actual[key], value) for key, value in expected.items())
    if isinstance(expected, list):
        if not isinstance(actual, list) or len(actual) != len(expected):
            return False
        return all(json_contains(a, e) for a, e in zip(actual, expected))
    if isinstance(expected, bool) or isinstance(actual, bool):
        return actual is expected
    return actual == expected


@dataclass(frozen=True)
class ResponseExpectation:
    """Declarative pass criteria: allowed statuses, a JSON subset, a body substring."""

    status: Optional[FrozenSet[int]] = None
    json_subset: Any = _NO_BODY
    body_contains: Optional[str] = None

    def check(self, response: ResponseSnapshot) -> List[str]:
        """Return one reason per unmet criterion (empty when all pass)."""
        reasons: List[str] = []
        if self.status is not None and response.status not in self.status:
            reasons.append(f"expected status {_format_statuses(self.status)}, got {response.status}")
        if self.json_subset is not _NO_BODY:
            if response.json is None and self.json_subset is not None:
                reasons.append("expected a JSON body, got " + _preview(response.text))
            elif not json_contains(response.json, self.json_subset):
                reasons.append(f"JSON body {_preview(response.text)} does not contain {self.json_subset!r}")
        if self.body_contains is not None and self.body_contains not in response.text:
            reasons.append(f"body does not contain {self.body_contains!r}")
        return reasons


@dataclass(frozen=True)
class ValidationCase:
    """
    One functional probe against a running service.

    ``url`` is either absolute or a path resolved against the base URL of
    ``target``. Cases sharing mutable server state must set ``serial`` so they
    never overlap with other cases.
    """

    name: str
    method: str = "GET"
    url: str = "/"
    body: Any = _NO_BODY
    headers: Mapping[str, str] = field(default_factory=dict)
    expect: ResponseExpectation = field(default_factory=ResponseExpectation)
    predicate: Optional[ResponsePredicate] = field(default=None, compare=False)
    target: str = "backend"
    serial: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())

    @property
    def has_body(self) -> bool:
        return self.body is not _NO_BODY

    def resolve_url(self, base_urls: Mapping[str, str]) -> str:
        if "://" in self.url:
            return self.url
        try:
            base = base_urls[self.target]
        except KeyError as exc:
            raise ValueError(f"{self.name}: unknown target {self.target!r}") from exc
        path = self.url if self.url.startswith("/") else f"/{self.url}"
        return base.rstrip("/") + path

    def evaluate(self, response: ResponseSnapshot) -> List[str]:
        """Return the reasons this response fails the case (empty list on pass)."""
        reasons = self.expect.check(response)
        if self.predicate is None:
            return reasons
        try:
            accepted = self.predicate(response)
        except Exception as exc:  # Recorded as a case failure  # policy_guard: allow-silent-handler
            reasons.append(f"predicate raised {type(exc).__name__}: {exc}")
        else:
            if not accepted:
                reasons.append("custom predicate rejected the response")
        return reasons

    def describe(self) -> str:
        return f"{self.method} {self.url}"


def _format_statuses(statuses: FrozenSet[int]) -> str:
    ordered: Tuple[int, ...] = tuple(sorted(statuses))
    if len(ordered) == 100 and ordered[-1] - ordered[0] == 99 and ordered[0] % 100 == 0:
        return f"{ordered[0] // 100}xx"
    return "/".join(str(code) for code in ordered)


def _preview(text: str, limit: int = 120) -> str:
    snippet = text.strip().replace("\n", " ")
    if len(snippet) > limit:
        snippet = snippet[:limit] + "..."
    return repr(snippet)


NO_BODY = _NO_BODY

__all__ = [
    "NO_BODY",
    "ResponseExpectation",
    "ResponsePredicate",
    "ResponseSnapshot",
    "ValidationCase",
    "json_contains",
    "parse_status_spec",
]
