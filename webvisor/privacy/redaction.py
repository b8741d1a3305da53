from __future__ import annotations

import re
from typing import Iterable, Optional

from ..recorder.config import DEFAULT_EXCLUDE_ATTRIBUTE, DEFAULT_MASK_ATTRIBUTE, PrivacyConfig
from ..recorder.dom import ELEMENT_NODE, Element, Node

SENSITIVE_INPUT_TYPES = (
    "password",
    "email",
    "tel",
    "credit-card",
    "cc-number",
    "cc-exp",
    "cc-csc",
)

SENSITIVE_NAME_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"password",
    r"passwd",
    r"credit",
    r"card",
    r"cvv",
    r"cvc",
    r"ssn",
    r"social.*security",
    r"secret",
    r"token",
))

MASK_CHAR = "*"
MASK_MAX_LEN = 20  # masked length leaks min(len, 20)


def mask_value(value: Optional[str]) -> str:
    if not value:
        return ""
    return MASK_CHAR * min(len(value), MASK_MAX_LEN)


class RedactionPolicy:
    """Masking and exclusion decisions shared by every capture path."""

    def __init__(
        self,
        mask_all_inputs: bool = False,
        mask_sensitive_inputs: bool = True,
        mask_attribute: str = DEFAULT_MASK_ATTRIBUTE,
        exclude_attribute: str = DEFAULT_EXCLUDE_ATTRIBUTE,
        exclude_pages: Iterable[str] = (),
    ):
        self.mask_all_inputs = mask_all_inputs
        self.mask_sensitive_inputs = mask_sensitive_inputs
        self.mask_attribute = mask_attribute
        self.exclude_attribute = exclude_attribute
        self.exclude_pages = [re.compile(p) for p in exclude_pages]

    @classmethod
    def from_config(cls, privacy: PrivacyConfig) -> "RedactionPolicy":
        return cls(
            mask_all_inputs=privacy.mask_all_inputs,
            mask_sensitive_inputs=privacy.mask_sensitive_inputs,
            mask_attribute=privacy.mask_attribute,
            exclude_attribute=privacy.exclude_attribute,
            exclude_pages=privacy.exclude_pages,
        )

    def should_mask(self, element: Element) -> bool:
        if self.mask_all_inputs:
            return True
        if element.has_attribute(self.mask_attribute):
            return True
        if not self.mask_sensitive_inputs:
            return False

        if element.tag_name == "INPUT":
            if element.type in SENSITIVE_INPUT_TYPES:
                return True
            autocomplete = element.autocomplete.lower()
            if any(t in autocomplete for t in SENSITIVE_INPUT_TYPES):
                return True

        fields = (element.name, element.id, element.placeholder)
        return any(p.search(f) for p in SENSITIVE_NAME_PATTERNS for f in fields if f)

    def redact(self, element: Element, value: Optional[str]):
        """Return ``(captured_value, masked)`` for a form control value."""
        if self.should_mask(element):
            return mask_value(value), True
        return value or "", False

    def is_excluded(self, node: Optional[Node]) -> bool:
        # text and comment nodes inherit from their parent element
        current = node if node is not None and node.node_type == ELEMENT_NODE else (
            node.parent_element if node is not None else None
        )
        while current is not None:
            if current.has_attribute(self.exclude_attribute):
                return True
            current = current.parent_element
        return False

    def is_page_excluded(self, url: str) -> bool:
        return any(p.search(url) for p in self.exclude_pages)
