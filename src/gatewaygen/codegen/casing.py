"""Go identifier casing.

Pascal casing must match the IDL compiler's own rules, otherwise generated
references to wire types would not line up with the compiled type names.
"""

import re
from functools import lru_cache

COMMON_INITIALISMS = frozenset(
    {
        "ACL", "API", "ASCII", "CPU", "CSS", "DNS", "EOF", "GUID", "HTML", "HTTP",
        "HTTPS", "ID", "IP", "JSON", "LHS", "OS", "QPS", "RAM", "RHS", "RPC", "SLA",
        "SMTP", "SQL", "SSH", "TCP", "TLS", "TTL", "UDP", "UI", "UID", "UUID", "URI",
        "URL", "UTF8", "VM", "XML", "XMPP", "XSRF", "XSS",
    }
)  # fmt: skip

_CHUNK = re.compile(r"[0-9A-Za-z]+")


def _starts_with_initialism(upper: str) -> str:
    found = ""
    for i in range(1, 6):
        if len(upper) >= i and upper[:i] in COMMON_INITIALISMS:
            found = upper[:i]
    return found


def _acronym_casing(segment: str) -> str:
    upper = segment.upper()
    if upper in COMMON_INITIALISMS:
        return upper
    if initial := _starts_with_initialism(upper):
        return initial + segment[len(initial) :]
    return segment


def camel_case(src: str) -> str:
    """``google-now`` -> ``googleNow``, ``http_client`` -> ``httpClient``."""
    chunks = _CHUNK.findall(src)
    out = []
    for idx, chunk in enumerate(chunks):
        if idx == 0:
            out.append(chunk[0].lower() + chunk[1:])
        else:
            out.append(_acronym_casing(chunk[0].upper() + chunk[1:]))
    return "".join(out)


def package_name(src: str) -> str:
    """Lower-cased alphanumeric chunks joined: ``google-now`` -> ``googlenow``."""
    return "".join(chunk.lower() for chunk in _CHUNK.findall(src))


def _is_all_caps(s: str) -> bool:
    return all(not c.isalpha() or c.isupper() for c in s)


@lru_cache(maxsize=4096)
def pascal_case(src: str) -> str:
    """``get_user_id`` -> ``GetUserID``; single all-caps words are kept."""
    words = src.split("_")
    allow_all_caps = len(words) == 1
    out = []
    for chunk in words:
        if not chunk:
            continue
        upper = chunk.upper()
        if upper in COMMON_INITIALISMS:
            out.append(upper)
        elif _is_all_caps(chunk) and not allow_all_caps:
            out.append(chunk.lower().title())
        else:
            out.append(chunk[0].upper() + chunk[1:])
    return "".join(out)


def lint_acronym(key: str) -> str:
    """Pascal-case ``key`` and upper-case any embedded initialism (``Http`` -> ``HTTP``)."""
    key = pascal_case(key)
    for initialism in sorted(COMMON_INITIALISMS):
        titled = initialism[0] + initialism[1:].lower()
        if titled in key:
            key = key.replace(titled, initialism)
    return key


def title(src: str) -> str:
    return src[:1].upper() + src[1:]
