import pytest

from threatguard.config.models import DEFAULT_THREAT_PATTERNS
from threatguard.services.pattern_matcher import PatternMatcher
from threatguard.utils.exceptions import ConfigurationError
from threatguard.utils.models import RequestDescriptor, Severity


@pytest.fixture
def matcher():
    return PatternMatcher(DEFAULT_THREAT_PATTERNS)


def _request(path="/api/works", body=None, method="GET"):
    return RequestDescriptor(
        method=method,
        path=path,
        headers={"accept": "application/json"},
        body=body,
        source_ip="10.0.0.1",
        request_id="req-1",
    )


def _types(matches):
    return {(m.type, m.severity) for m in matches}


def test_sql_injection_detected(matcher):
    matches = matcher.classify(_request(body="SELECT * FROM users WHERE id = 1 OR 1=1", method="POST"))
    assert ("sql_injection", Severity.HIGH) in _types(matches)


def test_xss_detected(matcher):
    matches = matcher.classify(_request(body="<script>alert(1)</script>", method="POST"))
    assert ("xss", Severity.HIGH) in _types(matches)


def test_path_traversal_in_path(matcher):
    matches = matcher.classify(_request(path="/files/../../etc/passwd"))
    assert "path_traversal" in {m.type for m in matches}


def test_malware_is_critical(matcher):
    matches = matcher.classify(_request(body="eval(base64_decode('aGk='))", method="POST"))
    malware = [m for m in matches if m.type == "malware"]
    assert malware and malware[0].severity is Severity.CRITICAL
    assert malware[0].category == "malware"


def test_clean_request_has_no_matches(matcher):
    assert matcher.classify(_request()) == []


def test_classify_is_pure(matcher):
    request = _request(body='{"cmd":"; rm -rf /"}', method="POST")
    assert matcher.classify(request) == matcher.classify(request)


def test_case_insensitive(matcher):
    matches = matcher.classify(_request(body="<SCRIPT>x</SCRIPT>", method="POST"))
    assert "xss" in {m.type for m in matches}


def test_replace_patterns_rejects_bad_regex_and_keeps_old(matcher):
    with pytest.raises(ConfigurationError):
        matcher.replace_patterns(
            [{"type": "x", "pattern": "[", "severity": "low", "category": "other", "description": "x"}]
        )
    assert "sql_injection" in matcher.pattern_types


def test_replace_patterns_swaps_set(matcher):
    matcher.replace_patterns(
        [{"type": "canary", "pattern": "canary", "severity": "low", "category": "other", "description": "c"}]
    )
    assert matcher.pattern_types == ["canary"]
    assert [m.type for m in matcher.classify(_request(path="/canary"))] == ["canary"]
