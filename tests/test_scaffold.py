"""
Tests for init planning and execution
"""

import json
import os
import stat
import tomllib
from datetime import datetime

import pytest

from cull_gmail.config import ConfigStore, load_client_config
from cull_gmail.errors import DirectoryCreationFailed, FileIo, SerializationError
from cull_gmail.rules import RuleSet
from cull_gmail.scaffold import (
    OperationKind,
    backup_path,
    config_file_contents,
    execute_operations,
    plan_init,
)


@pytest.fixture
def credential_file(tmp_path):
    path = tmp_path / 'downloaded.json'
    path.write_text(json.dumps({'installed': {'client_id': 'id', 'client_secret': 'secret'}}))
    return path


class TestPlan:
    """Tests for planning"""

    def test_plan_for_new_directory(self, tmp_path, credential_file):
        config_dir = tmp_path / 'conf'
        operations = plan_init(str(config_dir), credential_file)

        assert [op.kind for op in operations] == [
            OperationKind.CREATE_DIR,
            OperationKind.COPY_FILE,
            OperationKind.WRITE_FILE,
            OperationKind.WRITE_FILE,
        ]
        assert operations[1].path == config_dir / 'credential.json'
        assert not config_dir.exists()

    def test_existing_files_need_force(self, tmp_path):
        config_dir = tmp_path / 'conf'
        config_dir.mkdir()
        (config_dir / 'cull-gmail.toml').write_text('execute = false\n')

        with pytest.raises(FileIo):
            plan_init(str(config_dir))

        operations = plan_init(str(config_dir), force=True)
        assert operations[0].backup is True
        assert 'with backup' in str(operations[0])

    def test_invalid_credential_file(self, tmp_path):
        bad = tmp_path / 'bad.json'
        bad.write_text('{"nothing": 1}')
        with pytest.raises(SerializationError):
            plan_init(str(tmp_path / 'conf'), bad)


class TestExecute:
    """Tests for applying the plan"""

    def test_init_writes_usable_files(self, tmp_path, credential_file):
        """The written config and rules load back"""
        config_dir = tmp_path / 'conf'
        execute_operations(plan_init(str(config_dir), credential_file))

        config = load_client_config(config_dir / 'cull-gmail.toml', environ={})
        assert config.rules_path == config_dir / 'rules.toml'
        assert config.client_secrets()['installed']['client_id'] == 'id'

        rules = RuleSet.load(ConfigStore(config.rules_path))
        assert [rule.retention for rule in rules] == ['y:1', 'w:1', 'm:1', 'y:5']

        if os.name == 'posix':
            assert stat.S_IMODE((config_dir / 'credential.json').stat().st_mode) == 0o600

    def test_force_keeps_backup(self, tmp_path):
        config_dir = tmp_path / 'conf'
        config_dir.mkdir()
        (config_dir / 'rules.toml').write_text('# mine\n')

        execute_operations(plan_init(str(config_dir), force=True))

        backups = [p for p in config_dir.iterdir() if p.name.startswith('rules.toml.bak-')]
        assert len(backups) == 1
        assert backups[0].read_text() == '# mine\n'

    def test_config_root_with_special_characters(self):
        """Quotes and backslashes in the root survive the TOML round trip"""
        root = 'C:\\Users\\me\\"cull"'
        config = tomllib.loads(config_file_contents(root))

        assert config['config_root'] == root
        assert config['execute'] is False

    def test_directory_creation_failure(self, tmp_path):
        """A file in the way of the config root is reported"""
        blocker = tmp_path / 'blocker'
        blocker.write_text('x')

        with pytest.raises(DirectoryCreationFailed):
            execute_operations(plan_init(str(blocker / 'conf')))

    def test_backup_name(self, tmp_path):
        path = tmp_path / 'rules.toml'
        assert backup_path(path, datetime(2025, 9, 15, 8, 5, 3)).name == 'rules.toml.bak-20250915080503'
