"""
Token cache export/import for ephemeral environments
"""

import base64
import binascii
import gzip
import json
import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from cull_gmail.errors import FileIo, SerializationError, TokenNotFound


logger = logging.getLogger(__name__)


def _read_token_files(persist_path: Path) -> Dict[str, str]:
    try:
        if persist_path.is_file():
            return {persist_path.name: persist_path.read_text(encoding='utf-8')}
        if persist_path.is_dir():
            return {
                entry.name: entry.read_text(encoding='utf-8')
                for entry in sorted(persist_path.iterdir())
                if entry.is_file()
            }
    except OSError as error:
        raise FileIo(f"Failed to read token cache {persist_path}: {error}") from error

    raise TokenNotFound(f"Token cache not found: {persist_path}")


def export_tokens(persist_path) -> str:
    """Token cache as base64 of gzipped JSON {filename: content}"""
    token_files = _read_token_files(Path(persist_path))
    if not token_files:
        raise TokenNotFound("No token data found in cache")

    compressed = gzip.compress(json.dumps(token_files).encode('utf-8'))
    logger.debug(f"Exported {len(token_files)} token file(s)")
    return base64.b64encode(compressed).decode('ascii')


def _write_private(path: Path, content: str) -> None:
    path.write_text(content, encoding='utf-8')
    if os.name == 'posix':
        os.chmod(path, 0o600)


def restore_tokens_from_string(data: str, persist_path) -> None:
    """Write an exported token cache back to `persist_path`"""
    try:
        compressed = base64.b64decode(data.strip(), validate=True)
    except (binascii.Error, ValueError) as error:
        raise SerializationError(f"Failed to decode base64 token data: {error}") from error

    try:
        token_files = json.loads(gzip.decompress(compressed).decode('utf-8'))
    except (OSError, EOFError, UnicodeDecodeError) as error:
        raise SerializationError(f"Failed to decompress token data: {error}") from error
    except json.JSONDecodeError as error:
        raise SerializationError(f"Failed to parse token JSON: {error}") from error

    if not isinstance(token_files, dict):
        raise SerializationError("Token data is not a mapping of file names to contents")

    persist_path = Path(persist_path)
    try:
        if len(token_files) == 1 and persist_path.name in token_files:
            persist_path.parent.mkdir(parents=True, exist_ok=True)
            _write_private(persist_path, token_files[persist_path.name])
        else:
            persist_path.mkdir(parents=True, exist_ok=True)
            for filename, content in token_files.items():
                _write_private(persist_path / Path(filename).name, content)
    except OSError as error:
        raise FileIo(f"Failed to write token cache {persist_path}: {error}") from error

    logger.info(f"Restored {len(token_files)} token file(s) to {persist_path}")


def import_tokens(persist_path, env_var: str, environ: Optional[Mapping[str, str]] = None) -> None:
    environ = os.environ if environ is None else environ
    data = environ.get(env_var)
    if data is None:
        raise TokenNotFound(f"{env_var} environment variable not set")

    restore_tokens_from_string(data, persist_path)
    logger.info("Tokens successfully imported from environment variable")


def restore_tokens_if_available(persist_path, env_var: str, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Restore the token cache at startup when `env_var` is set"""
    environ = os.environ if environ is None else environ
    if not environ.get(env_var):
        return False

    logger.info(f"Found {env_var}, restoring token cache")
    restore_tokens_from_string(environ[env_var], persist_path)
    return True
