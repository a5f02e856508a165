"""
Regex utilities with ReDoS (Regular Expression Denial of Service) protection.

Failure-hook matchers are often written in conftest files or loaded from
configuration; a pattern with nested quantifiers evaluated against a long
failure message can stall diagnostics for minutes. ``safe_compile`` rejects
such patterns up front.

Matching itself runs inside hook dispatch threads, where signal-based
timeouts are not available, so protection here is validation only. Hook
dispatch bounds the total time separately.

Example Usage:
    from e2einfra.regex_utils import safe_compile

    try:
        pattern = safe_compile(user_pattern, re.IGNORECASE)
    except RegexComplexityError as e:
        lg.error("rejected matcher pattern", extra={"exception": e})
"""

import re
from re import Pattern


class RegexComplexityError(ValueError):
    """Raised when regex pattern is too complex."""

    pass


# Maximum pattern length to prevent extremely long patterns
MAX_PATTERN_LENGTH = 1000

# Nested quantifiers are the primary cause of catastrophic backtracking
DANGEROUS_PATTERNS = [
    r"\([^)]*[*+]\)[*+{]",  # (.+)+ or (.*)*
    r"\([^)]*\{[^}]+\}\)[*+{]",  # quantified groups followed by quantifiers
]


def _validate_pattern_complexity(pattern: str) -> None:
    """
    Validate regex pattern to detect potentially dangerous constructs.

    Raises:
        RegexComplexityError: If pattern is too complex or dangerous
    """
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise RegexComplexityError(
            f"Pattern too long ({len(pattern)} chars, max {MAX_PATTERN_LENGTH})"
        )

    for dangerous in DANGEROUS_PATTERNS:
        if re.search(dangerous, pattern):
            raise RegexComplexityError(
                "Pattern contains nested quantifiers that may cause ReDoS. "
                "Avoid patterns like (.+)+ or (.*)* that can cause catastrophic backtracking."
            )


def safe_compile(pattern: str, flags: int = 0) -> Pattern:
    """
    Safely compile a regex pattern with complexity validation.

    Args:
        pattern: Regex pattern string to compile
        flags: Regex flags (re.IGNORECASE, etc.)

    Returns:
        Compiled regex pattern

    Raises:
        RegexComplexityError: If pattern is too complex
        re.error: If pattern is invalid

    Example:
        >>> safe_compile(r"droplet .* not found", re.I).search("Droplet abc not found")
        <re.Match object; span=(0, 21), match='Droplet abc not found'>
    """
    _validate_pattern_complexity(pattern)
    return re.compile(pattern, flags)
