"""Tests for the OpenRouter oracle client (no network)."""

import pytest

from roadmap_app.services.oracle_client import OpenRouterOracle
from roadmap_app.services.service_base import UpstreamError


@pytest.fixture
def oracle():
    return OpenRouterOracle(api_key='sk-test', model='openai/gpt-4o-mini', temperature=0.2, max_tokens=1000)


def test_headers(oracle):
    headers = oracle._headers()
    assert headers['Authorization'] == 'Bearer sk-test'
    assert headers['X-Title'] == 'Roadmap Generator'
    assert headers['Content-Type'] == 'application/json'
    assert headers['X-Request-ID'] != oracle._headers()['X-Request-ID']


def test_payload_requests_json(oracle):
    payload = oracle._payload([{'role': 'user', 'content': 'hi'}])
    assert payload['model'] == 'openai/gpt-4o-mini'
    assert payload['temperature'] == 0.2
    assert payload['max_tokens'] == 1000
    assert payload['response_format'] == {'type': 'json_object'}


def test_from_config():
    oracle = OpenRouterOracle.from_config({
        'OPENROUTER_API_KEY': 'k',
        'OPENROUTER_MODEL': 'anthropic/claude-3-haiku',
        'OPENROUTER_TIMEOUT': '30',
    })
    assert oracle.api_key == 'k'
    assert oracle.model == 'anthropic/claude-3-haiku'
    assert oracle.timeout == 30


def test_extract_content():
    data = {'choices': [{'message': {'content': '  {"title": "x"}  '}}]}
    assert OpenRouterOracle._extract_content(data) == '{"title": "x"}'


def test_extract_content_without_choices():
    with pytest.raises(UpstreamError, match='rate limited'):
        OpenRouterOracle._extract_content({'error': {'message': 'rate limited'}})


def test_missing_api_key_is_upstream_error():
    oracle = OpenRouterOracle(api_key='', model='m')
    with pytest.raises(UpstreamError) as excinfo:
        oracle.complete('system', 'user')
    assert excinfo.value.status_code == 401


def test_unreachable_endpoint_is_upstream_error():
    oracle = OpenRouterOracle(api_key='k', model='m', timeout=2, api_url='http://127.0.0.1:9/v1/chat')
    with pytest.raises(UpstreamError):
        oracle.complete('system', 'user')
