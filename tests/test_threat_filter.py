"""
Tests for input screening:
1. Each threat category is detected
2. Structural heuristics (special characters, length)
3. Redeem code format rules
4. Display sanitizing
"""
import pytest

from coinbot.core.results import ErrorKind
from coinbot.services.threat_filter import ThreatCategory, ThreatFilter, sanitize


@pytest.fixture
def tf():
    return ThreatFilter()


class TestThreatPatterns:

    def test_rejects_script_tag(self, tf):
        result = tf.inspect("<script>alert(1)</script>")
        assert not result.ok
        assert result.kind == ErrorKind.VALIDATION

    def test_rejects_database_mutation(self, tf):
        assert not tf.inspect(".claim x; DROP TABLE users").ok

    def test_rejects_path_traversal(self, tf):
        assert not tf.inspect(".claim ../../secrets").ok

    def test_accepts_plain_code(self, tf):
        result = tf.inspect("WELCOME2024")
        assert result.ok
        assert result.value == "WELCOME2024"

    def test_accepts_regular_commands(self, tf):
        for text in (".roulette 100 red", ".guess 7", ".balance", ".claim BONUS_50-A", "hello there"):
            assert tf.inspect(text).ok, text

    @pytest.mark.parametrize("text,category", [
        ("eval(payload)", ThreatCategory.CODE_EXECUTION),
        ("x => { steal() }", ThreatCategory.CODE_EXECUTION),
        ("process.env", ThreatCategory.OS_INTROSPECTION),
        ("cat /etc/passwd", ThreatCategory.OS_INTROSPECTION),
        ("delete from users", ThreatCategory.SQL_MUTATION),
        ("update users set coins 99", ThreatCategory.SQL_MUTATION),
        ("<iframe src", ThreatCategory.MARKUP_INJECTION),
        ("javascript:alert", ThreatCategory.MARKUP_INJECTION),
        ("../../../root", ThreatCategory.PATH_TRAVERSAL),
        ("__proto__ polluted", ThreatCategory.PROTOTYPE_TAMPERING),
        ("constructor", ThreatCategory.PROTOTYPE_TAMPERING),
    ])
    def test_category_table(self, tf, text, category):
        assert tf.match(text) == category
        assert not tf.inspect(text).ok

    def test_patterns_are_case_insensitive(self, tf):
        assert tf.match("<SCRIPT>") == ThreatCategory.MARKUP_INJECTION

    def test_rejection_message_does_not_leak_pattern(self, tf):
        result = tf.inspect("DROP TABLE users")
        assert "DROP" not in result.message
        assert "TABLE" not in result.message


class TestHeuristics:

    def test_high_special_character_ratio(self, tf):
        assert not tf.inspect("!!!abc").ok

    def test_ratio_at_threshold_is_allowed(self, tf):
        # 3 of 10 characters
        assert tf.inspect("abcdefg!!!").ok

    def test_leading_dot_not_counted(self, tf):
        assert tf.inspect(".b").ok

    def test_too_long_input(self, tf):
        assert not tf.inspect("a" * 1001).ok
        assert tf.inspect("a" * 1000).ok

    def test_empty_input_is_clean(self, tf):
        assert tf.inspect("").ok


class TestCodeFormat:

    def test_valid_code(self, tf):
        assert tf.validate_code_format("PROMO_2024-x").ok

    def test_code_too_long(self, tf):
        result = tf.validate_code_format("A" * 51)
        assert not result.ok
        assert result.message == "Code too long"

    def test_code_with_invalid_characters(self, tf):
        result = tf.validate_code_format("CODE WITH SPACE")
        assert not result.ok
        assert result.message == "Code contains invalid characters"

    def test_code_matching_threat_pattern(self, tf):
        result = tf.validate_code_format("constructor")
        assert not result.ok
        assert result.message == "Invalid code format"

    def test_empty_code(self, tf):
        assert not tf.validate_code_format("").ok

    @pytest.mark.parametrize("code", ["ABC\n", "ABC\r\n", "\nABC", "AB\nC"])
    def test_code_with_line_break(self, tf, code):
        result = tf.validate_code_format(code)
        assert not result.ok
        assert result.kind == ErrorKind.VALIDATION


class TestSanitize:

    def test_strips_markup_characters(self):
        assert sanitize('  <b>"Launch" it\'s</b>  ') == "bLaunch its/b"

    def test_truncates(self):
        assert len(sanitize("x" * 500)) == 100

    def test_non_string(self):
        assert sanitize(None) == ""
