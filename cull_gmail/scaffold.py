"""
Init scaffolding - plans and writes the configuration directory
"""

import json
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

import tomli_w

from cull_gmail.config import (
    ConfigRoot,
    DEFAULT_CONFIG_FILE,
    DEFAULT_CONFIG_ROOT,
    DEFAULT_CREDENTIAL_FILE,
    DEFAULT_RULES_FILE,
    DEFAULT_TOKEN_CACHE_ENV,
    RootBase,
    expand_path,
)
from cull_gmail.errors import FileIo, SerializationError
from cull_gmail.rules import RuleSet


logger = logging.getLogger(__name__)

CONFIG_FILE_HEADER = '''# cull-gmail configuration
#
# config_root      configuration root directory (h: home, r: root, c: current directory)
# credential_file  OAuth2 credential file, relative to config_root
# rules            rules file, relative to config_root or absolute
# execute          default execution mode (false = dry-run, true = execute)
# token_cache_env  environment variable holding an exported token cache

'''

RULES_FILE_HEADER = '''# Retention rules for cull-gmail
# retention is <unit>:<count> with unit d, w, m or y; action is "trash" or "delete".
# Run `cull-gmail rules run` (dry-run) before `cull-gmail rules run --execute`.

'''


class OperationKind(Enum):
    CREATE_DIR = 'create_dir'
    COPY_FILE = 'copy_file'
    WRITE_FILE = 'write_file'


@dataclass
class Operation:
    """A single planned filesystem change"""
    kind: OperationKind
    path: Path
    source: Optional[Path] = None
    contents: Optional[str] = None
    mode: Optional[int] = None
    backup: bool = False

    def __str__(self) -> str:
        suffix = " (with backup)" if self.backup else ""
        if self.kind is OperationKind.CREATE_DIR:
            return f"Create directory: {self.path}"
        if self.kind is OperationKind.COPY_FILE:
            return f"Copy file: {self.source} -> {self.path}{suffix}"
        return f"Write file: {self.path}{suffix}"


# === Planning ===

def validate_credential_file(path: Path) -> None:
    if not path.is_file():
        raise FileIo(f"Credential file not found: {path}")
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
    except OSError as error:
        raise FileIo(f"Cannot read credential file: {error}") from error
    except json.JSONDecodeError as error:
        raise SerializationError(f"Invalid credential file format: {error}") from error
    if not isinstance(data, dict) or not ('installed' in data or 'web' in data):
        raise SerializationError(f"Credential file {path} has no `installed` client record")


def config_file_contents(config_root: str) -> str:
    return CONFIG_FILE_HEADER + tomli_w.dumps({
        'config_root': config_root,
        'credential_file': DEFAULT_CREDENTIAL_FILE,
        'rules': DEFAULT_RULES_FILE,
        'execute': False,
        'token_cache_env': DEFAULT_TOKEN_CACHE_ENV,
    })


def rules_file_contents() -> str:
    return RULES_FILE_HEADER + tomli_w.dumps(RuleSet.default().to_dict())


def _plan_file(operations: List[Operation], path: Path, force: bool, description: str, **kwargs) -> None:
    if path.exists() and not force:
        raise FileIo(f"{description} already exists: {path}\nUse --force to overwrite")
    operations.append(Operation(path=path, backup=path.exists() and force, **kwargs))


def plan_init(
    config_dir: str = DEFAULT_CONFIG_ROOT,
    credential_file: Optional[Path] = None,
    force: bool = False
) -> List[Operation]:
    """Work out the operations `init` performs, raising on conflicts"""
    config_path = expand_path(config_dir)
    operations: List[Operation] = []

    if not config_path.exists():
        operations.append(Operation(OperationKind.CREATE_DIR, config_path, mode=0o700))

    if credential_file is not None:
        credential_file = Path(credential_file)
        validate_credential_file(credential_file)
        _plan_file(
            operations,
            config_path / DEFAULT_CREDENTIAL_FILE,
            force,
            "Credential file",
            kind=OperationKind.COPY_FILE,
            source=credential_file,
            mode=0o600
        )

    _plan_file(
        operations,
        config_path / DEFAULT_CONFIG_FILE,
        force,
        "Configuration file",
        kind=OperationKind.WRITE_FILE,
        contents=config_file_contents(config_dir),
        mode=0o644
    )
    _plan_file(
        operations,
        config_path / DEFAULT_RULES_FILE,
        force,
        "Rules file",
        kind=OperationKind.WRITE_FILE,
        contents=rules_file_contents(),
        mode=0o644
    )
    return operations


# === Execution ===

def backup_path(path: Path, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime('%Y%m%d%H%M%S')
    return path.with_name(f"{path.name}.bak-{stamp}")


def _apply_mode(path: Path, mode: Optional[int]) -> None:
    if mode is not None and os.name == 'posix':
        os.chmod(path, mode)


def execute_operation(operation: Operation) -> None:
    path = operation.path
    try:
        if operation.kind is OperationKind.CREATE_DIR:
            logger.info(f"Creating directory: {path}")
            ConfigRoot(RootBase.NONE, str(path)).ensure(operation.mode or 0o700)
        else:
            if operation.backup and path.exists():
                backup = backup_path(path)
                logger.info(f"Backing up {path} to {backup}")
                shutil.copy2(path, backup)

            if operation.kind is OperationKind.COPY_FILE:
                logger.info(f"Copying file: {operation.source} -> {path}")
                shutil.copyfile(operation.source, path)
            else:
                logger.info(f"Writing file: {path}")
                path.write_text(operation.contents, encoding='utf-8')

        _apply_mode(path, operation.mode)
    except OSError as error:
        raise FileIo(f"Failed to apply `{operation}`: {error}") from error


def execute_operations(operations: List[Operation]) -> None:
    for operation in operations:
        execute_operation(operation)
