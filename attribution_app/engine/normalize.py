"""
Normalization helpers used for contact matching.

``normalize_email`` is total: it never raises and malformed addresses compare
literally after trimming and lower-casing.
"""

from __future__ import annotations

import re
from typing import Iterable

from config.matching import DEFAULT_PROFILE

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://")
_DOMAIN_LIKE_RE = re.compile(r"^[a-z0-9\-]+(\.[a-z0-9\-]+)+(/.*)?$")
_NON_WORD_RE = re.compile(r"[^\w\s]+")


def _clean_text(value: object | None) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def normalize_email(
    value: object | None,
    *,
    dot_insensitive_domains: Iterable[str] = DEFAULT_PROFILE.dot_insensitive_domains,
) -> str:
    """
    Normalize an email address for identity comparison.

    - Trim whitespace and lower-case the whole address
    - Anything without exactly one ``@`` is returned as-is after trimming
    - For dot-insensitive providers (gmail.com, googlemail.com) drop the
      ``+suffix`` and every ``.`` from the local part

    Non-string input yields an empty string.
    """

    if not isinstance(value, str):
        return ""
    token = value.strip().lower()
    if token.count("@") != 1:
        return token
    local_part, domain = token.split("@", 1)
    if domain in frozenset(dot_insensitive_domains):
        local_part = local_part.split("+", 1)[0].replace(".", "")
    return f"{local_part}@{domain}"


def email_domain(value: object | None) -> str:
    token = normalize_email(value, dot_insensitive_domains=())
    if token.count("@") != 1:
        return ""
    return token.split("@", 1)[1]


def normalize_phone(value: object | None) -> str:
    """Return the digits of a phone number, or an empty string."""

    if value is None or isinstance(value, bool):
        return ""
    return "".join(ch for ch in str(value) if ch.isdigit())


def normalize_name(value: object | None) -> str:
    """Case-fold and collapse whitespace."""

    return " ".join(_clean_text(value).split()).casefold()


def _strip_url(text: str) -> str:
    had_prefix = False
    stripped = _SCHEME_RE.sub("", text)
    if stripped != text:
        had_prefix = True
    if stripped.startswith("www."):
        stripped = stripped[4:]
        had_prefix = True
    if had_prefix or _DOMAIN_LIKE_RE.match(stripped):
        host = stripped.split("/", 1)[0]
        labels = [label for label in host.split(".") if label]
        # Drop the TLD so "acme.com" and "Acme Inc" share a key.
        if len(labels) > 1:
            labels = labels[:-1]
        return " ".join(labels)
    return stripped


def company_key(
    company: object | None,
    email: object | None = None,
    *,
    suffixes: Iterable[str] = DEFAULT_PROFILE.company_suffixes,
    free_mail_domains: Iterable[str] = DEFAULT_PROFILE.free_mail_domains,
) -> str:
    """
    Build a comparison key for a company.

    Lower-cases, strips URL scheme, ``www.`` and paths, removes punctuation and
    trailing legal-entity suffixes. When the company is blank the email domain
    stands in for it unless that domain is a free-mail provider.
    """

    text = _clean_text(company).lower()
    if not text:
        domain = email_domain(email)
        if not domain or domain in frozenset(free_mail_domains):
            return ""
        text = domain

    text = _strip_url(text)
    tokens = _NON_WORD_RE.sub(" ", text).replace("_", " ").split()
    suffix_set = frozenset(suffixes)
    while len(tokens) > 1 and tokens[-1] in suffix_set:
        tokens.pop()
    return " ".join(tokens)


__all__ = [
    "company_key",
    "email_domain",
    "normalize_email",
    "normalize_name",
    "normalize_phone",
]
