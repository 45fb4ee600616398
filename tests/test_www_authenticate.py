"""Tests for the WWW-Authenticate header parser."""

from layerproxy.services.www_authenticate import parse_www_authenticate


class TestParseWwwAuthenticate:
    def test_bearer_challenge(self):
        header = (
            'Bearer realm="https://auth.example.com/token",'
            'service="registry.example.com",scope="repository:lib/app:pull"'
        )
        assert parse_www_authenticate(header) == {
            "bearer": {
                "realm": "https://auth.example.com/token",
                "service": "registry.example.com",
                "scope": "repository:lib/app:pull",
            }
        }

    def test_scheme_and_keys_are_lowercased_values_keep_case(self):
        result = parse_www_authenticate('BEARER Realm="https://Auth.Example.com/Token"')
        assert result == {"bearer": {"realm": "https://Auth.Example.com/Token"}}

    def test_unquoted_values_and_whitespace(self):
        result = parse_www_authenticate("Bearer realm = https://auth.example.com/token , service=reg")
        assert result == {"bearer": {"realm": "https://auth.example.com/token", "service": "reg"}}

    def test_escaped_quotes_are_unescaped(self):
        result = parse_www_authenticate(r'Bearer realm="a \"quoted\" realm",error="x"')
        assert result["bearer"] == {"realm": 'a "quoted" realm', "error": "x"}

    def test_comma_inside_quotes(self):
        result = parse_www_authenticate('Bearer scope="repository:a:pull,push",service="s"')
        assert result["bearer"] == {"scope": "repository:a:pull,push", "service": "s"}

    def test_multiple_schemes(self):
        result = parse_www_authenticate('Basic realm="basic", Bearer realm="https://t",service="s"')
        assert result == {
            "basic": {"realm": "basic"},
            "bearer": {"realm": "https://t", "service": "s"},
        }

    def test_scheme_without_parameters(self):
        assert parse_www_authenticate("Negotiate") == {"negotiate": {}}
        assert parse_www_authenticate('Negotiate, Bearer realm="r"') == {
            "negotiate": {},
            "bearer": {"realm": "r"},
        }

    def test_trailing_comma_is_tolerated(self):
        assert parse_www_authenticate('Bearer realm="r",') == {"bearer": {"realm": "r"}}

    def test_empty_or_missing_header(self):
        assert parse_www_authenticate("") == {}
        assert parse_www_authenticate(None) == {}

    def test_unterminated_quote_drops_parameter(self):
        result = parse_www_authenticate('Bearer service="s",realm="https://t')
        assert result == {"bearer": {"service": "s"}}

    def test_parameter_without_scheme_is_skipped(self):
        assert parse_www_authenticate('realm="r", Bearer service="s"') == {"bearer": {"service": "s"}}
