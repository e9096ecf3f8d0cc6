"""
Configuration and CLI argument handling tests.
"""

import dataclasses

import orjson
import pytest

from atrium.config import InstanceConfig, loadConfig, SESSION_TTL_SECONDS
from atrium.errors import ConfigError
from atrium.main import buildConfig, parseArgs


class TestInstanceConfig:

    def test_defaults_and_resolved_root(self, projectRoot):
        config = InstanceConfig(projectId='demo', rootPath=projectRoot / 'docs' / '..', secret='s')

        assert config.rootPath == projectRoot.resolve()
        assert config.host == '127.0.0.1'
        assert config.sessionTtlSeconds == SESSION_TTL_SECONDS

    def test_is_immutable(self, config):
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.secret = 'changed'

    def test_secret_not_in_repr(self, config):
        assert 'abc123' not in repr(config)

    @pytest.mark.parametrize('overrides', [
        {'secret': ''},
        {'projectId': ''},
        {'sessionTtlSeconds': 0},
    ])
    def test_invalid_values(self, projectRoot, overrides):
        kwargs = {'projectId': 'demo', 'rootPath': projectRoot, 'secret': 's', **overrides}
        with pytest.raises(ConfigError):
            InstanceConfig(**kwargs)

    def test_root_must_be_directory(self, projectRoot):
        with pytest.raises(ConfigError):
            InstanceConfig(projectId='demo', rootPath=projectRoot / 'style.css', secret='s')
        with pytest.raises(ConfigError):
            InstanceConfig(projectId='demo', rootPath=projectRoot / 'nope', secret='s')

    def test_from_dict(self, projectRoot):
        config = InstanceConfig.fromDict({
            'projectId': 'demo',
            'rootPath': str(projectRoot),
            'secret': 's',
            'sessionTtlSeconds': '60',
            'unknownKey': True,
        })
        assert config.sessionTtlSeconds == 60

    def test_from_dict_missing_key(self, projectRoot):
        with pytest.raises(ConfigError, match='secret'):
            InstanceConfig.fromDict({'projectId': 'demo', 'rootPath': str(projectRoot)})

    def test_from_dict_bad_value(self, projectRoot):
        with pytest.raises(ConfigError):
            InstanceConfig.fromDict({'projectId': 'demo', 'rootPath': str(projectRoot),
                                     'secret': 's', 'shutdownTimeout': 'soon'})


class TestLoadConfig:

    def test_reads_json(self, tmp_path):
        path = tmp_path / 'instance.json'
        path.write_bytes(orjson.dumps({'projectId': 'demo'}))
        assert loadConfig(str(path)) == {'projectId': 'demo'}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / 'instance.json'
        path.write_text('{nope', encoding='utf-8')
        with pytest.raises(ConfigError):
            loadConfig(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            loadConfig(str(tmp_path / 'missing.json'))


class TestCommandLine:

    def test_root_only_generates_secret(self, projectRoot):
        config = buildConfig(parseArgs(['--root', str(projectRoot)]))

        assert config.projectId == 'project'
        assert config.rootPath == projectRoot.resolve()
        assert len(config.secret) == 64

    def test_command_line_overrides_file(self, projectRoot, tmp_path):
        path = tmp_path / 'instance.json'
        path.write_bytes(orjson.dumps({
            'projectId': 'fromFile',
            'rootPath': str(projectRoot),
            'secret': 'fileSecret',
        }))

        config = buildConfig(parseArgs(['--config', str(path), '--secret', 'cliSecret']))

        assert config.projectId == 'fromFile'
        assert config.secret == 'cliSecret'

    def test_port_default_is_any(self):
        assert parseArgs([]).port == 0
