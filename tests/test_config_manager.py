import pytest

from utils import config_manager as config_module
from utils.config_manager import ConfigManager, get_google_api_key


@pytest.fixture
def manager(tmp_path):
    return ConfigManager(config_dir=str(tmp_path / "config"))


def test_defaults_without_stored_config(manager):
    assert manager.get_ai_config().model == "gemini-2.5-pro"
    assert manager.get_rag_config().chunk_size == 1000
    assert manager.load_config('ai_config') is None


def test_stored_overrides_merge_over_defaults(manager):
    assert manager.save_config('rag_config', {'chunk_size': 500, 'unknown_key': 1})

    rag = manager.get_rag_config()
    assert rag.chunk_size == 500
    assert rag.chunk_overlap == 200

    assert manager.reset_to_defaults('rag_config')
    assert manager.get_rag_config().chunk_size == 1000


def test_results_are_cached_until_cleared(manager):
    first = manager.get_ui_config()
    assert manager.get_ui_config() is first
    manager.clear_cache()
    assert manager.get_ui_config() is not first


def test_all_configs_include_mpob_standards(manager):
    configs = manager.get_all_configs()

    assert set(configs) == {'ai_config', 'rag_config', 'cache_config', 'ui_config', 'mpob_standards'}
    ph = configs['mpob_standards']['soil_standards']['pH']
    assert ph['critical'] is True
    assert configs['mpob_standards']['leaf_standards']['N']['min_value'] == 2.6


def test_api_key_resolution(monkeypatch):
    monkeypatch.delenv('GOOGLE_API_KEY', raising=False)
    monkeypatch.delenv('GEMINI_API_KEY', raising=False)
    monkeypatch.setattr(config_module, 'get_secret_section', lambda name: {})
    assert get_google_api_key() is None

    monkeypatch.setenv('GEMINI_API_KEY', 'env-key')
    assert get_google_api_key() == 'env-key'

    monkeypatch.setattr(config_module, 'get_secret_section', lambda name: {'gemini_api_key': 'secret-key'})
    assert get_google_api_key() == 'secret-key'
