"""site_diff.sanitizer: normalization of fetched markup before comparison.

A :class:`RuleSet` is an ordered list of rules drawn from a closed set of
kinds (:class:`RuleKind`). Each rule is a pydantic model tagged by its
``type`` field, so a YAML block such as::

    sanitization:
      selector: "#content"
      rules:
        - type: remove
          selector: "script, .ad-slot"
        - type: regex
          pattern: "\\d{2}:\\d{2}:\\d{2}"
          substitute: "HH:MM:SS"
          selector: "span.timestamp"
        - type: strip_attribute
          attribute: data-csrf
        - type: whitespace

validates straight into typed rules. Invalid patterns and selectors are
rejected when the configuration is built, never while a run is in progress.

:func:`sanitize` is pure and deterministic. It never raises on bad markup:
if the document cannot be parsed, DOM rules are skipped and the text rules
still apply.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union, assert_never

import soupsieve
from bs4 import BeautifulSoup, NavigableString
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from site_diff.errors import SanitizationError
from site_diff.logger import logger

__all__ = [
    "RuleKind",
    "RegexRule",
    "RemoveRule",
    "UnwrapRule",
    "StripAttributeRule",
    "WhitespaceRule",
    "Rule",
    "RuleSet",
    "SanitizedDocument",
    "sanitize",
]

_WHITESPACE_RE = re.compile(r"\s+")


class RuleKind(str, Enum):
    REGEX = "regex"
    REMOVE = "remove"
    UNWRAP = "unwrap"
    STRIP_ATTRIBUTE = "strip_attribute"
    WHITESPACE = "whitespace"


def _compile_selector(value: str) -> str:
    try:
        soupsieve.compile(value)
    except soupsieve.SelectorSyntaxError as exc:
        raise SanitizationError(f"invalid CSS selector {value!r}: {exc}") from exc
    return value


Selector = Annotated[str, AfterValidator(_compile_selector)]


class _BaseRule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, description="Человекочитаемое описание правила.")

    @property
    def kind(self) -> RuleKind:
        return RuleKind(self.type)  # type: ignore[attr-defined]


class RegexRule(_BaseRule):
    """Regex substitution over the markup, or over the text of *selector* matches."""

    type: Literal["regex"] = "regex"
    pattern: str
    substitute: str = ""
    ignore_case: bool = False
    selector: Optional[Selector] = None

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            raise SanitizationError(f"invalid regular expression {v!r}: {exc}") from exc
        return v

    def compiled(self) -> re.Pattern[str]:
        return re.compile(self.pattern, re.IGNORECASE if self.ignore_case else 0)


class RemoveRule(_BaseRule):
    """Drop every element matching *selector*."""

    type: Literal["remove"] = "remove"
    selector: Selector


class UnwrapRule(_BaseRule):
    """Replace every element matching *selector* by its children."""

    type: Literal["unwrap"] = "unwrap"
    selector: Selector


class StripAttributeRule(_BaseRule):
    """Delete *attribute* from matching elements (all elements by default)."""

    type: Literal["strip_attribute"] = "strip_attribute"
    attribute: str = Field(..., min_length=1)
    selector: Optional[Selector] = None


class WhitespaceRule(_BaseRule):
    """Collapse runs of whitespace into a single space."""

    type: Literal["whitespace"] = "whitespace"


Rule = Annotated[
    Union[RegexRule, RemoveRule, UnwrapRule, StripAttributeRule, WhitespaceRule],
    Field(discriminator="type"),
]


class RuleSet(BaseModel):
    """Ordered sanitization rules plus document-level options."""

    model_config = ConfigDict(extra="forbid")

    rules: List[Rule] = Field(default_factory=list)
    selector: Optional[Selector] = Field(
        None, description="Сравнивать только фрагменты, найденные этим CSS-селектором."
    )
    prettify: bool = Field(True, description="Выводить один узел на строку перед сравнением.")


@dataclass(frozen=True, slots=True)
class SanitizedDocument:
    """Normalized markup of one fetched page. Never cached."""

    content: str
    structural: bool = True

    def lines(self) -> List[str]:
        return self.content.splitlines()


def _parse(markup: str) -> Optional[BeautifulSoup]:
    try:
        return BeautifulSoup(markup, "html.parser")
    except Exception as exc:  # noqa: BLE001
        logger.warning("Markup could not be parsed, falling back to text rules: %s", exc)
        return None


class _Working:
    """The document being sanitized, held as text or as a tree, converted lazily."""

    __slots__ = ("_text", "_soup", "structural")

    def __init__(self, text: str) -> None:
        self._text: Optional[str] = text
        self._soup: Optional[BeautifulSoup] = None
        self.structural = True

    def soup(self) -> Optional[BeautifulSoup]:
        if self._soup is None and self.structural:
            self._soup = _parse(self.text())
            if self._soup is None:
                self.structural = False
            else:
                self._text = None
        return self._soup

    def text(self) -> str:
        if self._soup is not None:
            self._text = self._soup.decode()
            self._soup = None
        return self._text or ""

    def set_text(self, text: str) -> None:
        self._soup = None
        self._text = text


def _substitute_in_elements(soup: BeautifulSoup, rule: RegexRule) -> None:
    pattern = rule.compiled()
    seen: set[int] = set()
    for element in soup.select(rule.selector or "*"):
        for string in list(element.find_all(string=True)):
            if id(string) in seen:
                continue
            seen.add(id(string))
            replaced = pattern.sub(rule.substitute, str(string))
            if replaced != str(string):
                string.replace_with(NavigableString(replaced))


AnyRule = Union[RegexRule, RemoveRule, UnwrapRule, StripAttributeRule, WhitespaceRule]


def _apply(work: _Working, rule: AnyRule) -> None:
    kind = rule.kind
    if kind is RuleKind.REGEX:
        if rule.selector is None:
            work.set_text(rule.compiled().sub(rule.substitute, work.text()))
            return
        soup = work.soup()
        if soup is not None:
            _substitute_in_elements(soup, rule)
    elif kind is RuleKind.WHITESPACE:
        work.set_text(_WHITESPACE_RE.sub(" ", work.text()).strip())
    elif kind is RuleKind.REMOVE:
        soup = work.soup()
        if soup is not None:
            for element in soup.select(rule.selector):
                element.extract()
    elif kind is RuleKind.UNWRAP:
        soup = work.soup()
        if soup is not None:
            for element in soup.select(rule.selector):
                if element.parent is not None:
                    element.unwrap()
    elif kind is RuleKind.STRIP_ATTRIBUTE:
        soup = work.soup()
        if soup is not None:
            targets = soup.select(rule.selector) if rule.selector else soup.find_all(True)
            for element in targets:
                if rule.attribute in element.attrs:
                    del element[rule.attribute]
    else:
        assert_never(kind)


def sanitize(raw: Union[str, bytes], rule_set: Optional[RuleSet] = None) -> SanitizedDocument:
    """Apply *rule_set* to *raw* markup, in declared order."""
    rule_set = rule_set if rule_set is not None else RuleSet()
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    work = _Working(text.replace("\r\n", "\n").replace("\r", "\n"))

    if rule_set.selector:
        soup = work.soup()
        if soup is not None:
            work.set_text("\n".join(str(match) for match in soup.select(rule_set.selector)))

    for rule in rule_set.rules:
        _apply(work, rule)

    if not work.structural:
        logger.debug("DOM rules skipped for unparseable document")
        return SanitizedDocument(work.text(), structural=False)

    if rule_set.prettify:
        soup = work.soup()
        if soup is not None:
            return SanitizedDocument(soup.prettify(), structural=True)
    return SanitizedDocument(work.text(), structural=work.structural)
