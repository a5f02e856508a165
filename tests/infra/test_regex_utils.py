"""
Tests for ReDoS-safe regex compilation.
"""

import re

import pytest

from e2einfra.regex_utils import MAX_PATTERN_LENGTH, RegexComplexityError, safe_compile


@pytest.mark.unit
class TestSafeCompile:
    def test_compiles_simple_pattern(self):
        pattern = safe_compile(r"Droplet .* not found", re.IGNORECASE)
        assert pattern.search("error: droplet abc not found")

    @pytest.mark.parametrize("pattern", [r"(.+)+", r"(a*)*b", r"(x{1,3})+"])
    def test_rejects_nested_quantifiers(self, pattern):
        with pytest.raises(RegexComplexityError, match="nested quantifiers"):
            safe_compile(pattern)

    def test_rejects_long_pattern(self):
        with pytest.raises(RegexComplexityError, match="too long"):
            safe_compile("a" * (MAX_PATTERN_LENGTH + 1))

    def test_invalid_pattern_raises_re_error(self):
        with pytest.raises(re.error):
            safe_compile("(unclosed")

    def test_complexity_error_is_value_error(self):
        assert issubclass(RegexComplexityError, ValueError)
