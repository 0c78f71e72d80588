"""Derive Kubernetes-safe names for the injected sidecar.

Container names and hostnames must be valid DNS-1123 labels (lowercase
alphanumerics and ``-``, starting and ending with an alphanumeric, at most 63
characters). Secret names must be valid DNS-1123 subdomains, which also allow
``.`` and may be up to 253 characters long.
"""

import string

SIDECAR_PREFIX = "ts-sidecar-"
LEGACY_SIDECAR_NAME = "ts-sidecar"

MAX_LABEL_LENGTH = 63
MAX_SUBDOMAIN_LENGTH = 253

# 52 with the current prefix, one less than the 53 used by earlier releases,
# which could emit 64-character names. Truncating before sanitizing means pods
# whose "<namespace>-<name>" only differ past this many characters get the
# same sidecar name.
SIDECAR_SUFFIX_LENGTH = MAX_LABEL_LENGTH - len(SIDECAR_PREFIX)

DEFAULT_SECRET_PATTERN = "tailscale-{{NAMESPACE}}-{{POD_NAME}}"
FALLBACK_SECRET_NAME = "tailscale-secret"

FILLER = "x"

ALNUM = frozenset(string.ascii_lowercase + string.digits)
LABEL_CHARS = ALNUM | {"-"}
SUBDOMAIN_CHARS = LABEL_CHARS | {"."}


def _fold(raw: str, allowed: frozenset[str]) -> str:
    """Lowercase ASCII letters and replace anything not in `allowed` with a dash."""
    chars = []
    for c in raw:
        if c in string.ascii_uppercase:
            c = c.lower()
        chars.append(c if c in allowed else "-")
    return "".join(chars)


def sanitize(raw: str) -> str:
    """Turn an arbitrary string into a valid DNS-1123 label body.

    The result is never empty and ``sanitize(sanitize(x)) == sanitize(x)``.
    Length is not enforced here; callers truncate first.
    """
    result = _fold(raw, LABEL_CHARS).strip("-")
    if not result or result[0] not in ALNUM:
        result = FILLER + result
    return result


def sanitize_secret_name(raw: str) -> str:
    """Turn an arbitrary string into a valid DNS-1123 subdomain."""
    result = _fold(raw, SUBDOMAIN_CHARS)

    while any(seq in result for seq in ("--", "..", "-.", ".-")):
        result = result.replace("--", "-")
        result = result.replace("..", ".")
        result = result.replace("-.", ".")
        result = result.replace(".-", "-")

    result = result.strip("-.")

    if not result:
        result = FALLBACK_SECRET_NAME
    else:
        if result[0] not in ALNUM:
            result = FILLER + result
        if result[-1] not in ALNUM:
            result = result + FILLER

    if len(result) > MAX_SUBDOMAIN_LENGTH:
        result = result[:MAX_SUBDOMAIN_LENGTH]
        if result[-1] not in ALNUM:
            result = result[:-1] + FILLER

    return result


def sidecar_container_name(namespace: str, name: str) -> str:
    suffix = f"{namespace}-{name}"[:SIDECAR_SUFFIX_LENGTH]
    return SIDECAR_PREFIX + sanitize(suffix)


def hostname(name: str, namespace: str) -> str:
    """Tailnet hostname for the sidecar.

    Pods in different namespaces may share a name, so the namespace is part of
    the hostname to keep tailnet node names from colliding.
    """
    return sanitize(f"{name}-{namespace}"[:MAX_LABEL_LENGTH])


def interpolate_secret_name(
    pattern: str,
    namespace: str,
    name: str,
    uid: str,
    default: str = DEFAULT_SECRET_PATTERN,
) -> str:
    """Fill in the placeholders of a secret name pattern and sanitize it.

    ``{{NAMESPACE}}``, ``{{POD_NAME}}`` and ``{{POD_UID}}`` are replaced;
    any other ``{{...}}`` text is left alone (and then sanitized like
    everything else). An empty pattern selects `default`.
    """
    result = pattern or default
    result = result.replace("{{NAMESPACE}}", namespace)
    result = result.replace("{{POD_NAME}}", name)
    result = result.replace("{{POD_UID}}", uid)
    return sanitize_secret_name(result)
