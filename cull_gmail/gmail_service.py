"""
Gmail Service - Facade for the Gmail API operations the rule engine needs
Handles authentication and wraps every call in asyncio.to_thread
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from cull_gmail.config import ClientConfig
from cull_gmail.errors import ExternalError, NoLabelsFound
from cull_gmail.models import DEFAULT_MAX_RESULTS


logger = logging.getLogger(__name__)

# Batch delete needs the full mail scope; delete the token cache after changing this.
SCOPES = ['https://mail.google.com/']
USER_ID = 'me'


class MailProvider(Protocol):
    """Operations the selector, applier and engine depend on"""

    async def list_labels(self) -> List[Dict]: ...

    async def list_messages(
        self,
        query: str,
        label_ids: List[str],
        page_token: Optional[str] = None,
        max_results: int = DEFAULT_MAX_RESULTS
    ) -> Dict: ...

    async def get_message_metadata(self, message_id: str, headers: Optional[List[str]] = None) -> Dict: ...

    async def batch_modify(self, ids: List[str], add_label_ids: List[str], remove_label_ids: List[str]) -> None: ...

    async def batch_delete(self, ids: List[str]) -> None: ...


class GmailService:
    """Facade for Gmail operations - handles auth and the raw API calls"""

    def __init__(self, config: Optional[ClientConfig] = None, service=None):
        self.config = config or ClientConfig()
        # Gmail API service object; injected in tests, built by authenticate() otherwise
        self.service = service

    # === Authentication ===

    @property
    def token_path(self) -> Path:
        return self.config.persist_path

    def _save_credentials(self, creds: Credentials) -> None:
        token_path = self.token_path
        token_path.parent.mkdir(parents=True, exist_ok=True)
        token_path.write_text(creds.to_json())
        if os.name == 'posix':
            os.chmod(token_path, 0o600)

    def _load_credentials(self) -> Optional[Credentials]:
        token_path = self.token_path
        if not token_path.exists():
            logger.info("No existing token found")
            return None

        try:
            return Credentials.from_authorized_user_file(str(token_path), SCOPES)
        except ValueError as error:
            logger.warning(f"Ignoring unreadable token cache {token_path}: {error}")
            return None

    def authenticate(self) -> 'GmailService':
        """Load, refresh or obtain credentials and build the API client"""
        if self.service is not None:
            return self

        creds = self._load_credentials()

        if creds and not creds.valid and creds.expired and creds.refresh_token:
            logger.info("Refreshing expired credentials")
            try:
                creds.refresh(Request())
                self._save_credentials(creds)
            except RefreshError as error:
                logger.warning(f"Could not refresh credentials, consent is needed again: {error}")
                creds = None

        if not creds or not creds.valid:
            logger.info("Starting OAuth consent flow in the browser")
            flow = InstalledAppFlow.from_client_config(self.config.client_secrets(), SCOPES)
            creds = flow.run_local_server(port=0)
            self._save_credentials(creds)

        self.service = build('gmail', 'v1', credentials=creds, cache_discovery=False)
        logger.info("Successfully authenticated with Gmail")
        return self

    def _require_service(self):
        if self.service is None:
            raise ExternalError("Not authenticated. Call authenticate() first.")
        return self.service

    async def _execute(self, description: str, request_factory):
        """Run a request built by `request_factory` in a worker thread"""
        self._require_service()
        try:
            return await asyncio.to_thread(lambda: request_factory().execute())
        except HttpError as error:
            logger.error(f"Error {description}: {error}")
            raise ExternalError(f"Error {description}: {error}") from error
        except (TransportError, RefreshError, OSError) as error:
            logger.error(f"Connection error {description}: {error}")
            raise ExternalError(f"Connection error {description}: {error}") from error

    # === Labels ===

    async def list_labels(self) -> List[Dict]:
        """Fetch every label (system and user) from Gmail"""
        results = await self._execute(
            "fetching labels",
            lambda: self.service.users().labels().list(userId=USER_ID)
        )
        labels = [
            {'id': label.get('id', ''), 'name': label.get('name', '')}
            for label in results.get('labels', [])
        ]
        logger.debug(f"Fetched {len(labels)} labels")
        return labels

    async def label_map(self) -> Dict[str, str]:
        """Label name -> label id"""
        labels = await self.list_labels()
        if not labels:
            raise NoLabelsFound()
        return {label['name']: label['id'] for label in labels}

    # === Messages ===

    async def list_messages(
        self,
        query: str,
        label_ids: List[str],
        page_token: Optional[str] = None,
        max_results: int = DEFAULT_MAX_RESULTS
    ) -> Dict:
        """Fetch one page of message ids matching `query` and `label_ids`"""
        params = {'userId': USER_ID, 'maxResults': max_results}
        if query:
            params['q'] = query
        if label_ids:
            params['labelIds'] = list(label_ids)
        if page_token:
            params['pageToken'] = page_token

        results = await self._execute(
            "listing messages",
            lambda: self.service.users().messages().list(**params)
        )
        return {
            'messages': results.get('messages', []),
            'next_page_token': results.get('nextPageToken'),
            'estimate': results.get('resultSizeEstimate'),
        }

    async def get_message_metadata(self, message_id: str, headers: Optional[List[str]] = None) -> Dict:
        return await self._execute(
            f"fetching message {message_id}",
            lambda: self.service.users().messages().get(
                userId=USER_ID,
                id=message_id,
                format='metadata',
                metadataHeaders=headers or ['Subject', 'Date']
            )
        )

    # === Batch actions ===

    async def batch_modify(self, ids: List[str], add_label_ids: List[str], remove_label_ids: List[str]) -> None:
        body = {
            'ids': list(ids),
            'addLabelIds': list(add_label_ids),
            'removeLabelIds': list(remove_label_ids),
        }
        await self._execute(
            f"modifying {len(ids)} messages",
            lambda: self.service.users().messages().batchModify(userId=USER_ID, body=body)
        )

    async def batch_delete(self, ids: List[str]) -> None:
        body = {'ids': list(ids)}
        await self._execute(
            f"deleting {len(ids)} messages",
            lambda: self.service.users().messages().batchDelete(userId=USER_ID, body=body)
        )
