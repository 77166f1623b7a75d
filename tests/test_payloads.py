"""Tests for payload loading, user-agent selection and attack injection."""

import random
import re

import pytest

from waf_tester.core.models import TestConfig
from waf_tester.core.payloads import (
    ATTACK_CATEGORIES,
    FALLBACK_LEGITIMATE_USER_AGENT,
    FALLBACK_SCANNER_USER_AGENTS,
    NO_PAYLOADS,
    PAYLOAD_FILES,
    PayloadPool,
    build_attack_request,
    generate_404_url,
    parse_payload_lines,
    select_user_agent,
    set_header,
)


def single_payload_pool(payload="P"):
    pools = {category: [payload] for category in ATTACK_CATEGORIES}
    pools["scanner"] = ["scanner-ua"]
    pools["legitimate"] = ["browser-ua"]
    return PayloadPool(pools, rng=random.Random(0))


class TestPayloadLoading:
    def test_parse_skips_blanks_and_comments(self):
        content = "# header\n\n  one  \n#two\nthree\n   \n"
        assert parse_payload_lines(content) == ["one", "three"]

    async def test_bundled_payloads_load(self):
        pool = await PayloadPool.from_directory()
        for name in PAYLOAD_FILES:
            assert pool.pools[name], f"bundled pool {name} is empty"

    async def test_load_from_directory(self, tmp_path):
        (tmp_path / "sql-injection.txt").write_text("# sql\n' OR 1=1\n1 UNION SELECT 1\n")
        (tmp_path / "scanner-user-agents.txt").write_text("Nikto\n")

        pool = PayloadPool()
        total = await pool.load(tmp_path)

        assert total == 3
        assert pool.pools["sql"] == ["' OR 1=1", "1 UNION SELECT 1"]
        assert pool.pools["xss"] == []
        assert pool.random_scanner_user_agent() == "Nikto"

    async def test_missing_directory_leaves_pool_usable(self, tmp_path):
        pool = PayloadPool()
        total = await pool.load(tmp_path / "does-not-exist")

        assert total == 0
        assert pool.random_payload("sql") == ""
        assert pool.random_scanner_user_agent() in FALLBACK_SCANNER_USER_AGENTS
        assert pool.random_legitimate_user_agent() == FALLBACK_LEGITIMATE_USER_AGENT

    def test_unknown_category_has_no_payload(self):
        assert single_payload_pool().random_payload("ldap") == ""


class TestSelectUserAgent:
    def test_custom_user_agent_wins(self):
        pool = single_payload_pool()
        config = TestConfig(
            traffic_type="attack", user_agent_type="scanner", custom_user_agent="Mine/1.0"
        )
        assert select_user_agent(config, pool) == "Mine/1.0"

    def test_explicit_type_beats_traffic_default(self):
        pool = single_payload_pool()
        assert select_user_agent(
            TestConfig(traffic_type="attack", user_agent_type="legitimate"), pool
        ) == "browser-ua"
        assert select_user_agent(
            TestConfig(traffic_type="normal", user_agent_type="scanner"), pool
        ) == "scanner-ua"

    def test_traffic_type_defaults(self):
        pool = single_payload_pool()
        assert select_user_agent(TestConfig(traffic_type="attack"), pool) == "scanner-ua"
        assert select_user_agent(TestConfig(traffic_type="normal"), pool) == "browser-ua"
        assert select_user_agent(TestConfig(), pool) == "browser-ua"


class TestBuildAttackRequest:
    def test_get_appends_query_parameters(self):
        config = TestConfig(target_url="http://x/y", http_method="GET")
        url, body, headers, info = build_attack_request(config, single_payload_pool())

        assert url == "http://x/y?id=P&search=P"
        assert body == ""
        assert info.endswith("(query parameter)")
        assert info.split(" ")[0] in ATTACK_CATEGORIES

    def test_get_with_existing_query(self):
        config = TestConfig(target_url="http://x/y?a=1", http_method="GET")
        url, _, _, _ = build_attack_request(config, single_payload_pool())
        assert url == "http://x/y?a=1&id=P&search=P"

    def test_empty_method_is_treated_as_get(self):
        config = TestConfig(target_url="http://x/y")
        url, _, _, _ = build_attack_request(config, single_payload_pool())
        assert url == "http://x/y?id=P&search=P"

    def test_post_without_body_synthesizes_json(self):
        config = TestConfig(target_url="http://x/y", http_method="POST")
        url, body, _, info = build_attack_request(config, single_payload_pool())

        assert url == "http://x/y"
        assert body == '{"id": "P", "search": "P"}'
        assert info.endswith("(request body)")

    def test_post_with_body_splices_attack_key(self):
        config = TestConfig(
            target_url="http://x/y", http_method="PUT", request_body='{"name": "bob"}'
        )
        _, body, _, _ = build_attack_request(config, single_payload_pool())
        assert body == '{"name": "bob", "attack": "P"}'

    def test_body_not_ending_in_brace_is_appended_to(self):
        config = TestConfig(target_url="http://x/y", http_method="POST", request_body="a=1")
        _, body, _, _ = build_attack_request(config, single_payload_pool())
        assert body == 'a=1, "attack": "P"}'

    def test_attack_always_uses_scanner_user_agent(self):
        config = TestConfig(
            target_url="http://x/y",
            user_agent_type="legitimate",
            custom_headers={"X-Test": "1"},
        )
        _, _, headers, _ = build_attack_request(config, single_payload_pool())
        assert headers == {"X-Test": "1", "User-Agent": "scanner-ua"}

    def test_config_headers_are_not_mutated(self):
        config = TestConfig(target_url="http://x/y", custom_headers={"X-Test": "1"})
        build_attack_request(config, single_payload_pool())
        assert config.custom_headers == {"X-Test": "1"}

    def test_no_payloads_sends_request_unmodified(self):
        config = TestConfig(target_url="http://x/y", request_body="{}")
        url, body, headers, info = build_attack_request(config, PayloadPool())
        assert (url, body, info) == ("http://x/y", "{}", NO_PAYLOADS)
        assert "User-Agent" not in headers

    def test_categories_are_all_reachable(self):
        pool = single_payload_pool()
        config = TestConfig(target_url="http://x/y")
        seen = {build_attack_request(config, pool)[3].split(" ")[0] for _ in range(200)}
        assert seen == set(ATTACK_CATEGORIES)


class TestGenerate404Url:
    def test_strips_trailing_slash(self):
        url = generate_404_url("http://x/app/")
        assert re.fullmatch(r"http://x/app/nonexistent-path-\d+-\d+", url)

    def test_paths_differ(self):
        rng = random.Random(3)
        urls = {generate_404_url("http://x", rng) for _ in range(20)}
        assert len(urls) > 1

    @pytest.mark.parametrize("base", ["http://x", "http://x/"])
    def test_single_separator(self, base):
        assert "//nonexistent" not in generate_404_url(base)


def test_set_header_replaces_any_casing():
    headers = {"user-agent": "a", "USER-AGENT": "b", "Accept": "*/*"}
    set_header(headers, "User-Agent", "c")
    assert headers == {"Accept": "*/*", "User-Agent": "c"}
