import json

from idioma.config import DEFAULT_CONFIG, Config


def test_defaults():
    cfg = Config(environ={})
    assert cfg.get('fetcher.timeout_seconds') == 30
    assert cfg.get('fetcher.max_attempts') == 3
    assert cfg.get('cache.extraction_days') == 7
    assert cfg.get('cache.simplification_hours') == 24
    assert cfg.get('openai.max_completion_tokens') == 3000
    assert cfg.get('openai.api_key') is None
    assert cfg.get('missing.key', 'fallback') == 'fallback'


def test_environment_overrides_use_double_underscore():
    cfg = Config(environ={
        'IDIOMA_FETCHER__TIMEOUT_SECONDS': '10',
        'IDIOMA_SERVER__CORS_ORIGINS': '["https://app.example.com"]',
        'IDIOMA_OPENAI__MODEL': 'gpt-4o-mini',
        'IDIOMA_STORE__BACKEND': 'memory',
    })
    assert cfg.get('fetcher.timeout_seconds') == 10
    assert cfg.get('server.cors_origins') == ["https://app.example.com"]
    assert cfg.get('openai.model') == 'gpt-4o-mini'
    assert cfg.get('store.backend') == 'memory'


def test_plain_api_key_variables_are_fallbacks():
    cfg = Config(environ={'OPENAI_API_KEY': 'sk-plain', 'NEWS_API_KEY': 'news-key'})
    assert cfg.get('openai.api_key') == 'sk-plain'
    assert cfg.get('news.api_key') == 'news-key'

    cfg = Config(environ={'OPENAI_API_KEY': 'sk-plain', 'IDIOMA_OPENAI__API_KEY': 'sk-prefixed'})
    assert cfg.get('openai.api_key') == 'sk-prefixed'


def test_config_path_variable_is_not_a_setting():
    cfg = Config(environ={'IDIOMA_CONFIG_PATH': '/etc/idioma.yaml'})
    assert cfg.get('config_path') is None


def test_overrides_do_not_leak_into_defaults():
    Config(environ={'IDIOMA_CACHE__NEWS_HOURS': '1', 'IDIOMA_AUTH__TOKENS': '{"t": "u"}'})
    assert DEFAULT_CONFIG['cache']['news_hours'] == 24
    assert DEFAULT_CONFIG['auth']['tokens'] == {}


def test_yaml_file_is_merged(tmp_path):
    path = tmp_path / "idioma.yaml"
    path.write_text(
        "cache:\n"
        "  news_hours: 6\n"
        "auth:\n"
        "  required: true\n"
        "  tokens:\n"
        "    secret: user-1\n"
    )
    cfg = Config(str(path), environ={})
    assert cfg.get('cache.news_hours') == 6
    assert cfg.get('cache.simplification_hours') == 24
    assert cfg.get('auth.required') is True
    assert cfg.get('auth.tokens') == {'secret': 'user-1'}


def test_json_file_then_environment(tmp_path):
    path = tmp_path / "idioma.json"
    path.write_text(json.dumps({"server": {"port": 9000}}))
    cfg = Config(str(path), environ={'IDIOMA_SERVER__PORT': '9100'})
    assert cfg.get('server.port') == 9100


def test_unsupported_file_keeps_defaults(tmp_path):
    path = tmp_path / "idioma.ini"
    path.write_text("[cache]\nnews_hours = 1\n")
    cfg = Config(str(path), environ={})
    assert cfg.get('cache.news_hours') == 24
