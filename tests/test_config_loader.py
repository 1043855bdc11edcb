import json

import pytest

from config.config_loader import DEFAULT_SETTINGS, load_client_settings, load_config


def test_bundled_configuration_loads():
    config = load_config()

    assert set(config) >= {'transport', 'pagination', 'authentication'}


def test_partial_configuration_is_merged_over_defaults():
    settings = load_client_settings({'transport': {'timeout_seconds': 5}})

    assert settings['transport']['timeout_seconds'] == 5
    assert settings['transport']['max_retry_attempts'] == 4
    assert settings['authentication']['renewal_margin_seconds'] == 30
    assert DEFAULT_SETTINGS['transport']['timeout_seconds'] == 240


def test_missing_section_is_rejected(tmp_path):
    path = tmp_path / 'client_config.json'
    path.write_text(json.dumps({'transport': {}}), encoding='utf-8')

    with pytest.raises(KeyError):
        load_config(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / 'nope.json')
