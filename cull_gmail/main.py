#!/usr/bin/env python3
"""
Cull Gmail - apply retention rules to Gmail labels from the command line
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from cull_gmail.applier import ActionApplier
from cull_gmail.config import DEFAULT_CONFIG_ROOT, ClientConfig, ConfigStore, load_client_config
from cull_gmail.engine import RuleEngine
from cull_gmail.errors import CullGmailError, LabelNotFoundInMailbox, NoRuleSelector, RuleNotFound
from cull_gmail.gmail_service import GmailService
from cull_gmail.models import DEFAULT_MAX_RESULTS, Action, ApplierConfig, RunSummary, SelectorConfig
from cull_gmail.retention import MessageAge, Period, Retention
from cull_gmail.rules import RuleSet
from cull_gmail.scaffold import execute_operations, plan_init
from cull_gmail.selector import MessageSelector
from cull_gmail.tokens import export_tokens, import_tokens, restore_tokens_if_available


logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_ERROR = 101

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


# === Setup ===

def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    logging.getLogger().setLevel(level)
    # googleapiclient logs every discovery lookup at INFO
    logging.getLogger('googleapiclient').setLevel(max(level, logging.WARNING))


def create_service(config: ClientConfig) -> GmailService:
    """Authenticated Gmail facade, restoring an exported token cache first if one is set"""
    restore_tokens_if_available(config.persist_path, config.token_cache_env)
    return GmailService(config).authenticate()


def load_rules(config: ClientConfig) -> RuleSet:
    return RuleSet.load_or_default(ConfigStore(config.rules_path))


def _install_interrupt_handler(engine: RuleEngine):
    def _handle_interrupt(signum, frame):
        """Handle Ctrl+C gracefully"""
        if not engine.interrupted:
            console.print("\n[yellow]Interrupt received. Finishing the current request before exiting...[/yellow]")
            engine.interrupt()
        else:
            console.print("\n[red]Force quit requested. Exiting immediately.[/red]")
            sys.exit(1)

    return signal.signal(signal.SIGINT, _handle_interrupt)


# === Labels ===

async def list_labels(service) -> int:
    labels = await service.list_labels()

    table = Table(title="Mailbox Labels", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="cyan")
    table.add_column("Id", style="green")
    for label in sorted(labels, key=lambda x: x['name'].lower()):
        table.add_row(label['name'], label['id'])

    console.print(table)
    return EXIT_OK


# === Messages ===

async def resolve_label_ids(service, names: List[str]) -> List[str]:
    if not names:
        return []
    label_map = await service.label_map()
    label_ids = []
    for name in names:
        if name not in label_map:
            raise LabelNotFoundInMailbox(name)
        label_ids.append(label_map[name])
    return label_ids


def print_messages(summaries) -> None:
    table = Table(title=f"Messages ({len(summaries):,})", show_header=True, header_style="bold cyan")
    table.add_column("Id", style="cyan")
    table.add_column("Date: Subject")
    for summary in summaries:
        table.add_row(summary.id, summary.list_date_and_subject())
    console.print(table)


async def run_messages(service, args) -> int:
    config = SelectorConfig(
        query=args.query or '',
        label_ids=await resolve_label_ids(service, args.label),
        max_results=args.max_results,
        pages=args.pages
    )
    selector = MessageSelector(service, config)
    summaries = await selector.select()
    await selector.enrich()

    if args.messages_command == 'list':
        print_messages(summaries)
        return EXIT_OK

    action = Action.DELETE if args.messages_command == 'delete' else Action.TRASH
    applier = ActionApplier(service, ApplierConfig(action=action, execute=True))
    stats = await applier.apply(summaries, config.label_ids)
    console.print(f"[green]{stats['messages']:,} messages {action.outcome}[/green]")
    return EXIT_OK


# === Rules configuration ===

def print_rules(rules: RuleSet) -> None:
    table = Table(title="Retention Rules", show_header=True, header_style="bold cyan")
    table.add_column("Id", justify="right", style="cyan")
    table.add_column("Retention", style="green")
    table.add_column("Labels")
    table.add_column("Action", style="yellow")
    for rule in rules:
        table.add_row(str(rule.id), rule.retention, ", ".join(rule.labels), str(rule.action() or ''))
    console.print(table)
    for rule in rules:
        console.print(f"  {rule}")


def run_rules_config(rules: RuleSet, args) -> int:
    command = args.config_command

    if command == 'list':
        print_rules(rules)

    elif command == 'add-rule':
        age = MessageAge.new(args.period, args.count)
        rules.add(Retention(age, generate_label=args.label is None), args.label, args.delete)
        rules.save()

    elif command == 'remove-rule':
        if args.id is not None:
            rules.remove_by_id(args.id)
        elif args.label is not None:
            rules.remove_by_label(args.label)
        else:
            raise NoRuleSelector()
        rules.save()

    elif command == 'label':
        if args.label_command == 'list':
            rule = rules.get(args.id)
            if rule is None:
                raise RuleNotFound(args.id)
            for label in rule.labels:
                console.print(label)
        elif args.label_command == 'add':
            rules.add_label_to_rule(args.id, args.label)
        else:
            rules.remove_label_from_rule(args.id, args.label)

    elif command == 'set-action-on-rule':
        rules.set_action_on_rule(args.id, Action(args.action))

    return EXIT_OK


# === Rule run ===

def print_run_summary(summary: RunSummary) -> None:
    table = Table(title="Cull Results", show_header=True, header_style="bold cyan")
    table.add_column("Label", style="cyan")
    table.add_column("Rule", justify="right")
    table.add_column("Action", style="yellow")
    table.add_column("Messages", justify="right", style="green")
    table.add_column("Status")

    for outcome in summary.outcomes:
        if outcome.failed:
            status = f"[red]failed: {escape(outcome.error)}[/red]"
        elif outcome.executed:
            status = "[green]executed[/green]"
        else:
            status = "[yellow]dry run[/yellow]"
        table.add_row(
            outcome.label,
            str(outcome.rule_id),
            str(outcome.action or ''),
            f"{len(outcome.message_ids):,}",
            status
        )

    console.print(table)
    if not summary.execute:
        console.print("\n[bold yellow]DRY RUN MODE:[/bold yellow]")
        console.print("  - No messages were trashed or deleted")
        console.print("  - Run with --execute to apply the rules")


async def run_rules(service, rules: RuleSet, execute: bool, skip_actions=None) -> int:
    label_map = await service.label_map()

    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console, transient=True) as progress:
        task = progress.add_task("Running rules...", total=None)

        async def progress_callback(event: str, data: Dict):
            if event == "page_fetched":
                progress.update(task, description=f"Selected {data['total_messages']:,} messages")
            elif event == "message_enriched":
                progress.update(task, description=f"Reading {data['processed_messages']:,}/{data['total_messages']:,}: {escape(data['subject'][:50])}")

        engine = RuleEngine(
            service,
            rules,
            label_map,
            execute=execute,
            skip_actions=skip_actions,
            progress_callback=progress_callback
        )
        previous_handler = _install_interrupt_handler(engine)
        try:
            summary = await engine.run()
        finally:
            signal.signal(signal.SIGINT, previous_handler)

    print_run_summary(summary)

    if summary.outcomes and len(summary.failures) == len(summary.outcomes):
        err_console.print("[red]Error:[/red] every rule failed, see the log for details")
        return EXIT_ERROR
    return EXIT_OK


# === Init and tokens ===

def run_init(args) -> int:
    credential_file = Path(args.credential_file) if args.credential_file else None
    operations = plan_init(args.config_dir, credential_file, args.force)

    console.print("[bold cyan]Planned operations:[/bold cyan]")
    for index, operation in enumerate(operations, start=1):
        console.print(f"  {index}. {operation}")

    if args.dry_run:
        console.print("\nTo apply these changes, run without --dry-run")
        return EXIT_OK

    execute_operations(operations)
    console.print("[green]Configuration initialised[/green]")
    if credential_file is None:
        console.print("Add a credential file later with `cull-gmail init --credential-file PATH --force`")
    return EXIT_OK


def run_token(config: ClientConfig, args) -> int:
    if args.token_command == 'export':
        print(export_tokens(config.persist_path))
    else:
        import_tokens(config.persist_path, config.token_cache_env)
        console.print("[green]Tokens imported[/green]")
    return EXIT_OK


# === Argument parsing ===

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='cull-gmail', description='Cull Gmail messages with label based retention rules')
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    verbosity.add_argument('-q', '--quiet', action='store_true', help='Only log errors')
    parser.add_argument('--config', type=Path, help='Client config file (default: ~/.cull-gmail/cull-gmail.toml)')

    commands = parser.add_subparsers(dest='command')

    commands.add_parser('labels', help='List the mailbox labels')

    messages = commands.add_parser('messages', help='List, trash or delete messages matching a search')
    messages.add_argument('-m', '--max-results', type=int, default=DEFAULT_MAX_RESULTS, help='Messages per page (1-500)')
    messages.add_argument('-p', '--pages', type=int, default=1, help='Pages to fetch, 0 for all')
    messages.add_argument('-l', '--label', action='append', default=[], help='Label name to filter on (repeatable)')
    messages.add_argument('-Q', '--query', help='Gmail search query')
    messages.add_argument('messages_command', choices=['list', 'trash', 'delete'])

    rules = commands.add_parser('rules', help='Configure or run retention rules')
    rules_commands = rules.add_subparsers(dest='rules_command', required=True)

    config = rules_commands.add_parser('config', help='Configure the rules')
    config_commands = config.add_subparsers(dest='config_command', required=True)
    config_commands.add_parser('list', help='List the rules')

    add_rule = config_commands.add_parser('add-rule', help='Add a rule')
    add_rule.add_argument('-p', '--period', required=True, choices=[p.word for p in Period])
    add_rule.add_argument('-c', '--count', type=int, default=1)
    add_rule.add_argument('-l', '--label', help='Label for the rule (generated from the retention when omitted)')
    add_rule.add_argument('--delete', action='store_true', help='Delete messages permanently instead of trashing them')

    remove_rule = config_commands.add_parser('remove-rule', help='Remove a rule by id or label')
    remove_rule.add_argument('--id', type=int)
    remove_rule.add_argument('--label')

    label = config_commands.add_parser('label', help='Manage the labels of a rule')
    label.add_argument('label_command', choices=['list', 'add', 'remove'])
    label.add_argument('--id', type=int, required=True)
    label.add_argument('--label')

    set_action = config_commands.add_parser('set-action-on-rule', help='Set the action of a rule')
    set_action.add_argument('--id', type=int, required=True)
    set_action.add_argument('action', choices=[a.value for a in Action])

    run = rules_commands.add_parser('run', help='Run the rules')
    run.add_argument('-e', '--execute', action='store_true', help='Trash or delete messages (default is a dry run)')
    run.add_argument('-t', '--skip-trash', action='store_true', help='Skip rules that trash messages')
    run.add_argument('-d', '--skip-delete', action='store_true', help='Skip rules that delete messages')

    init = commands.add_parser('init', help='Create the configuration directory and files')
    init.add_argument('--config-dir', default=DEFAULT_CONFIG_ROOT, help='Config root (default: h:.cull-gmail)')
    init.add_argument('--credential-file', help='OAuth2 credential JSON file to copy into the config root')
    init.add_argument('--force', action='store_true', help='Overwrite existing files, keeping backups')
    init.add_argument('--dry-run', action='store_true', help='Show the plan without changing anything')

    token = commands.add_parser('token', help='Export or import the token cache')
    token.add_argument('token_command', choices=['export', 'import'])

    return parser


# === Main Entry Point ===

def dispatch(args) -> int:
    if args.command == 'init':
        return run_init(args)

    config = load_client_config(args.config)

    if args.command == 'token':
        return run_token(config, args)

    if args.command == 'rules' and args.rules_command == 'config':
        if args.config_command == 'label' and args.label_command != 'list' and not args.label:
            raise CullGmailError("--label is required to add or remove a label")
        return run_rules_config(load_rules(config), args)

    service = create_service(config)

    if args.command == 'labels':
        return asyncio.run(list_labels(service))

    if args.command == 'messages':
        return asyncio.run(run_messages(service, args))

    rules = load_rules(config)
    if args.command == 'rules':
        skip_actions = set()
        if args.skip_trash:
            skip_actions.add(Action.TRASH)
        if args.skip_delete:
            skip_actions.add(Action.DELETE)
        return asyncio.run(run_rules(service, rules, args.execute or config.execute, skip_actions))

    return asyncio.run(run_rules(service, rules, config.execute))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    load_dotenv()

    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    try:
        return dispatch(args)
    except CullGmailError as error:
        logger.error(f"{error}")
        err_console.print(f"[red]Error:[/red] {escape(str(error))}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
