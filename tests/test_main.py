"""
Tests for the command line interface
"""

import pytest

from cull_gmail import main as cli
from cull_gmail.config import ConfigStore
from cull_gmail.models import Action
from cull_gmail.retention import MessageAge, Retention
from cull_gmail.rules import RuleSet


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Client config rooted in tmp_path, with no token cache in the environment"""
    monkeypatch.delenv('CULL_GMAIL_TOKEN_CACHE', raising=False)
    monkeypatch.delenv('APP_EXECUTE', raising=False)
    path = tmp_path / 'cull-gmail.toml'
    path.write_text(f'config_root = "{tmp_path}"\n')
    return path


@pytest.fixture
def rules_store(tmp_path) -> ConfigStore:
    return ConfigStore(tmp_path / 'rules.toml')


def run(config_file, *argv) -> int:
    return cli.main(['--config', str(config_file), *argv])


class TestRulesConfig:
    """Tests for `rules config` subcommands"""

    def test_list_creates_default_rules(self, config_file, rules_store):
        assert run(config_file, 'rules', 'config', 'list') == 0
        assert len(RuleSet.load(rules_store)) == 4

    def test_add_rule_with_label(self, config_file, rules_store):
        code = run(config_file, 'rules', 'config', 'add-rule', '-p', 'months', '-c', '6', '-l', 'newsletters', '--delete')

        assert code == 0
        rule = RuleSet.load(rules_store).get(5)
        assert rule.retention == 'm:6'
        assert rule.labels == ['newsletters']
        assert rule.action() is Action.DELETE

    def test_add_rule_generates_label(self, config_file, rules_store):
        run(config_file, 'rules', 'config', 'add-rule', '-p', 'days', '-c', '30')
        assert RuleSet.load(rules_store).get(5).labels == ['retention/30-days']

    def test_remove_rule_needs_selector(self, config_file):
        """Neither --id nor --label is an error"""
        assert run(config_file, 'rules', 'config', 'remove-rule') == cli.EXIT_ERROR

    def test_remove_rule_by_label(self, config_file, rules_store):
        run(config_file, 'rules', 'config', 'list')
        assert run(config_file, 'rules', 'config', 'remove-rule', '--label', 'retention/1-weeks') == 0
        assert RuleSet.load(rules_store).ids() == [1, 3, 4]

    def test_set_action_to_delete(self, config_file, rules_store):
        """delete is not mapped to trash"""
        run(config_file, 'rules', 'config', 'list')
        assert run(config_file, 'rules', 'config', 'set-action-on-rule', '--id', '2', 'delete') == 0
        assert RuleSet.load(rules_store).get(2).action() is Action.DELETE

    def test_label_commands(self, config_file, rules_store):
        run(config_file, 'rules', 'config', 'list')
        assert run(config_file, 'rules', 'config', 'label', 'add', '--id', '1', '--label', 'old') == 0
        assert 'old' in RuleSet.load(rules_store).get(1).labels

        assert run(config_file, 'rules', 'config', 'label', 'remove', '--id', '1', '--label', 'old') == 0
        assert 'old' not in RuleSet.load(rules_store).get(1).labels

    def test_unknown_rule_id(self, config_file):
        run(config_file, 'rules', 'config', 'list')
        assert run(config_file, 'rules', 'config', 'label', 'list', '--id', '99') == cli.EXIT_ERROR

    def test_bad_arguments_exit_2(self, config_file):
        with pytest.raises(SystemExit) as excinfo:
            run(config_file, 'rules', 'config', 'add-rule', '-p', 'fortnights')
        assert excinfo.value.code == 2


class TestRun:
    """Tests for `rules run` against the mock service"""

    @pytest.fixture
    def patched_service(self, monkeypatch, gmail_service):
        monkeypatch.setattr(cli, 'create_service', lambda config: gmail_service)
        return gmail_service

    def test_dry_run(self, config_file, rules_store, mock_api, patched_service):
        """The default rules run without modifying anything"""
        assert run(config_file, 'rules', 'run') == 0
        assert mock_api.batch_modify_calls == []
        assert mock_api.count('messages.list') > 0

    def test_execute(self, config_file, rules_store, mock_api, patched_service, five_year_rules):
        five_year_rules.store = rules_store
        five_year_rules.save()

        assert run(config_file, 'rules', 'run', '--execute') == 0
        assert len(mock_api.batch_modify_calls) == 1

    def test_skip_trash(self, config_file, rules_store, mock_api, patched_service, five_year_rules):
        five_year_rules.store = rules_store
        five_year_rules.save()

        assert run(config_file, 'rules', 'run', '-e', '-t') == 0
        assert mock_api.count('messages.list') == 0

    def test_all_rules_failing_exits_101(self, config_file, rules_store, patched_service):
        rules = RuleSet(rules_store)
        rules.add(Retention(MessageAge.new('years', 2), generate_label=False), 'missing-label')
        rules.save()

        assert run(config_file, 'rules', 'run') == cli.EXIT_ERROR

    def test_no_subcommand_runs_rules(self, config_file, rules_store, mock_api, patched_service):
        assert run(config_file) == 0
        assert mock_api.count('labels.list') == 1

    def test_labels(self, config_file, mock_api, patched_service):
        assert run(config_file, 'labels') == 0
        assert mock_api.count('labels.list') == 1

    def test_messages_list(self, config_file, mock_api, patched_service):
        assert run(config_file, 'messages', '-l', 'retention/5-years', '-p', '0', 'list') == 0
        assert mock_api.count('messages.get') == 3
        assert mock_api.batch_modify_calls == []

    def test_messages_unknown_label(self, config_file, patched_service):
        assert run(config_file, 'messages', '-l', 'nope', 'list') == cli.EXIT_ERROR


class TestToken:
    """Tests for `token` subcommands"""

    def test_export_without_cache(self, config_file):
        assert run(config_file, 'token', 'export') == cli.EXIT_ERROR

    def test_export_prints_cache(self, config_file, tmp_path, capsys):
        (tmp_path / 'gmail1').write_text('{"token": "t"}')
        assert run(config_file, 'token', 'export') == 0
        assert capsys.readouterr().out.strip()
