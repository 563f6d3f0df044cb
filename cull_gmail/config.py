"""
Configuration - config root expansion, client configuration and TOML store
"""

import json
import logging
import os
import re
import tempfile
import tomllib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional

import tomli_w
from pydantic import BaseModel, ConfigDict, ValidationError

from cull_gmail.errors import (
    DirectoryCreationFailed,
    DirectoryUnset,
    FileIo,
    HomeExpansionFailed,
    SerializationError,
)


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_ROOT = 'h:.cull-gmail'
DEFAULT_CONFIG_FILE = 'cull-gmail.toml'
DEFAULT_RULES_FILE = 'rules.toml'
DEFAULT_CREDENTIAL_FILE = 'credential.json'
DEFAULT_TOKEN_CACHE_ENV = 'CULL_GMAIL_TOKEN_CACHE'
DEFAULT_TOKEN_URI = 'https://oauth2.googleapis.com/token'
DEFAULT_AUTH_URI = 'https://accounts.google.com/o/oauth2/auth'
TOKEN_CACHE_NAME = 'gmail1'
ENV_PREFIX = 'APP_'

ROOT_PATTERN = re.compile(r'^(?P<base>[hrc]):(?P<path>.+)$')


# === Config root ===

class RootBase(Enum):
    NONE = ''
    CURRENT = 'c'
    HOME = 'h'
    ROOT = 'r'


@dataclass(frozen=True)
class ConfigRoot:
    """A directory written as `h:<p>` (home), `r:<p>` (root), `c:<p>` (cwd) or bare"""
    base: RootBase
    path: str

    @classmethod
    def parse(cls, value: str) -> 'ConfigRoot':
        match = ROOT_PATTERN.match(value or '')
        if not match:
            return cls(RootBase.NONE, value or '')
        return cls(RootBase(match.group('base')), match.group('path'))

    @property
    def is_prefixed(self) -> bool:
        return self.base is not RootBase.NONE

    def full_path(self) -> Path:
        if not self.path:
            raise DirectoryUnset()

        if self.base is RootBase.HOME:
            try:
                return Path.home() / self.path
            except (RuntimeError, KeyError) as error:
                raise HomeExpansionFailed(str(self)) from error
        if self.base is RootBase.ROOT:
            return Path('/') / self.path
        if self.base is RootBase.CURRENT:
            return Path.cwd() / self.path
        return Path(self.path)

    def ensure(self, mode: int = 0o700) -> Path:
        """Create the directory if needed and return it"""
        path = self.full_path()
        try:
            path.mkdir(mode=mode, parents=True, exist_ok=True)
        except OSError as error:
            raise DirectoryCreationFailed(str(path), str(error)) from error
        return path

    def __str__(self) -> str:
        prefix = f"{self.base.value}:" if self.is_prefixed else ''
        return f"{prefix}{self.path}"


def expand_path(value: str) -> Path:
    """Expand a possibly prefixed path (`h:`, `r:`, `c:`)"""
    return ConfigRoot.parse(value).full_path()


# === TOML store ===

class ConfigStore:
    """TOML file with load/save; saves go through a temp file and a rename"""

    def __init__(self, path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Dict:
        logger.debug(f"Loading {self.path}")
        try:
            text = self.path.read_text(encoding='utf-8')
        except OSError as error:
            raise FileIo(f"Could not read {self.path}: {error}") from error

        try:
            return tomllib.loads(text)
        except tomllib.TOMLDecodeError as error:
            raise SerializationError(f"Could not parse {self.path}: {error}") from error

    def save(self, data: Mapping) -> None:
        try:
            content = tomli_w.dumps(data)
        except TypeError as error:
            raise SerializationError(f"Could not serialize data for {self.path}: {error}") from error

        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix='.tmp', dir=self.path.parent)
            with os.fdopen(fd, 'w', encoding='utf-8') as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as error:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise FileIo(f"Could not write {self.path}: {error}") from error

        logger.debug(f"Saved {self.path}")


# === Client configuration ===

class ClientConfig(BaseModel):
    """Settings read from cull-gmail.toml"""
    model_config = ConfigDict(extra='ignore')

    config_root: str = DEFAULT_CONFIG_ROOT
    credential_file: str = DEFAULT_CREDENTIAL_FILE
    rules: str = DEFAULT_RULES_FILE
    execute: bool = False
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    token_uri: str = DEFAULT_TOKEN_URI
    auth_uri: str = DEFAULT_AUTH_URI
    token_cache_env: str = DEFAULT_TOKEN_CACHE_ENV

    @property
    def root(self) -> ConfigRoot:
        return ConfigRoot.parse(self.config_root)

    @property
    def persist_path(self) -> Path:
        """Token cache file"""
        return self.root.full_path() / TOKEN_CACHE_NAME

    @property
    def credential_path(self) -> Path:
        return self.root.full_path() / self.credential_file

    @property
    def rules_path(self) -> Path:
        rules_root = ConfigRoot.parse(self.rules)
        if rules_root.is_prefixed:
            return rules_root.full_path()
        path = Path(self.rules)
        if path.is_absolute():
            return path
        return self.root.full_path() / path

    @property
    def has_inline_secret(self) -> bool:
        return bool(self.client_id and self.client_secret and self.token_uri and self.auth_uri)

    def client_secrets(self) -> Dict:
        """OAuth client record in the `installed` shape InstalledAppFlow expects"""
        if self.has_inline_secret:
            return {
                'installed': {
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'token_uri': self.token_uri,
                    'auth_uri': self.auth_uri,
                    'redirect_uris': ['http://localhost'],
                }
            }

        path = self.credential_path
        logger.info(f"Reading OAuth client from {path}")
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except OSError as error:
            raise FileIo(f"Could not read credential file {path}: {error}") from error
        except json.JSONDecodeError as error:
            raise SerializationError(f"Credential file {path} is not valid JSON: {error}") from error

        if 'installed' not in data and 'web' not in data:
            raise SerializationError(f"Credential file {path} has no `installed` client record")
        return data


def default_config_path() -> Path:
    return ConfigRoot.parse(DEFAULT_CONFIG_ROOT).full_path() / DEFAULT_CONFIG_FILE


def load_client_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> ClientConfig:
    """Read the client config file (if present) and apply APP_* environment overrides"""
    path = Path(path) if path else default_config_path()
    environ = os.environ if environ is None else environ

    data: Dict = {}
    if path.exists():
        logger.info(f"Loading config from {path}")
        data = ConfigStore(path).load()
    else:
        logger.info(f"No config file at {path}, using defaults")

    for name in ClientConfig.model_fields:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            data[name] = value

    try:
        return ClientConfig.model_validate(data)
    except ValidationError as error:
        raise SerializationError(f"Invalid configuration in {path}: {error}") from error
