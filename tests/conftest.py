"""
Shared test fixtures for Cull Gmail tests
"""

import pytest
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set
from googleapiclient.errors import HttpError

from cull_gmail.config import ClientConfig
from cull_gmail.gmail_service import GmailService
from cull_gmail.models import Action
from cull_gmail.retention import MessageAge, Period, Retention
from cull_gmail.rules import RuleSet


# === Mock Gmail API Service ===

class MockHttpResponse:
    """Mock HTTP response for HttpError"""
    def __init__(self, status: int, reason: str):
        self.status = status
        self.reason = reason


def make_http_error(status: int = 500, reason: str = 'Backend Error') -> HttpError:
    return HttpError(resp=MockHttpResponse(status, reason), content=reason.encode())


class MockExecute:
    """Mock for the .execute() call that returns stored data or raises"""
    def __init__(self, data, error: Optional[Exception] = None):
        self._data = data
        self._error = error

    def execute(self):
        if self._error is not None:
            raise self._error
        return self._data


class MockLabels:
    """Mock for users().labels()"""
    def __init__(self, api: 'MockGmailApi'):
        self._api = api

    def list(self, userId: str):
        self._api.calls.append(('labels.list', {}))
        return MockExecute({'labels': self._api.labels}, self._api.error_for('labels.list'))


class MockMessages:
    """Mock for users().messages(); pages are served in order, page token = page index"""
    def __init__(self, api: 'MockGmailApi'):
        self._api = api

    def list(self, userId: str, maxResults: int = 100, pageToken: Optional[str] = None, q: str = None, labelIds: List[str] = None):
        self._api.calls.append(('messages.list', {
            'maxResults': maxResults,
            'pageToken': pageToken,
            'q': q,
            'labelIds': labelIds
        }))

        index = int(pageToken) if pageToken else 0
        pages = self._api.pages
        page = pages[index] if index < len(pages) else []

        result = {'resultSizeEstimate': len(page)}
        if page:
            result['messages'] = [{'id': message_id, 'threadId': message_id} for message_id in page]
        if index + 1 < len(pages):
            result['nextPageToken'] = str(index + 1)

        return MockExecute(result, self._api.error_for('messages.list', index))

    def get(self, userId: str, id: str, format: str = None, metadataHeaders: List[str] = None):
        self._api.calls.append(('messages.get', {'id': id, 'format': format, 'metadataHeaders': metadataHeaders}))

        if id in self._api.fail_ids:
            return MockExecute(None, make_http_error(404, 'Not Found'))

        headers = [
            {'name': name, 'value': value}
            for name, value in self._api.headers.get(id, {}).items()
        ]
        return MockExecute({'id': id, 'payload': {'headers': headers}})

    def batchModify(self, userId: str, body: Dict):
        self._api.calls.append(('messages.batchModify', body))
        error = self._api.error_for('messages.batchModify')
        if error is None:
            self._api.batch_modify_calls.append(body)
        return MockExecute({}, error)

    def batchDelete(self, userId: str, body: Dict):
        self._api.calls.append(('messages.batchDelete', body))
        error = self._api.error_for('messages.batchDelete')
        if error is None:
            self._api.batch_delete_calls.append(body)
        return MockExecute({}, error)


class MockUsers:
    """Mock for service.users()"""
    def __init__(self, api: 'MockGmailApi'):
        self._labels = MockLabels(api)
        self._messages = MockMessages(api)

    def labels(self):
        return self._labels

    def messages(self):
        return self._messages


class MockGmailApi:
    """Mock Gmail API service that records every call"""

    def __init__(
        self,
        labels: Optional[List[Dict]] = None,
        pages: Optional[List[List[str]]] = None,
        headers: Optional[Dict[str, Dict[str, str]]] = None,
        fail_ids: Optional[Set[str]] = None,
        fail_calls: Optional[Dict[str, int]] = None,
        fail_with: Optional[Callable[[], Exception]] = None
    ):
        self.labels = labels if labels is not None else []
        self.pages = pages if pages is not None else []
        self.headers = headers or {}
        self.fail_ids = fail_ids or set()
        # call name -> page index (or 0) from which the call fails
        self.fail_calls = fail_calls or {}
        # builds the raised error; HttpError when unset
        self.fail_with = fail_with or make_http_error

        self.calls = []
        self.batch_modify_calls: List[Dict] = []
        self.batch_delete_calls: List[Dict] = []

    def users(self):
        return MockUsers(self)

    def error_for(self, call: str, index: int = 0) -> Optional[Exception]:
        if call in self.fail_calls and index >= self.fail_calls[call]:
            return self.fail_with()
        return None

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def count(self, call: str) -> int:
        return self.call_names().count(call)


# === Helpers ===

def make_label(label_id: str, name: str, label_type: str = 'user') -> Dict:
    return {'id': label_id, 'name': name, 'type': label_type}


def make_headers(subject: str, date: str = 'Mon, 15 Sep 2025 10:00:00 +0000') -> Dict[str, str]:
    return {'Subject': subject, 'Date': date}


def make_service(api: MockGmailApi) -> GmailService:
    return GmailService(ClientConfig(), service=api)


# === Fixtures ===

@pytest.fixture
def today() -> datetime:
    return datetime(2025, 9, 15, 14, 30)


@pytest.fixture
def sample_labels() -> List[Dict]:
    return [
        make_label('INBOX', 'INBOX', 'system'),
        make_label('TRASH', 'TRASH', 'system'),
        make_label('LBL_1', 'retention/5-years'),
        make_label('LBL_2', 'retention/1-weeks'),
    ]


@pytest.fixture
def sample_headers() -> Dict[str, Dict[str, str]]:
    return {
        'a': make_headers('Quarterly newsletter'),
        'b': make_headers('Your receipt', 'Tue, 02 Jan 2018 08:15:00 +0000'),
        'c': make_headers('Old invitation', 'Fri, 10 Mar 2017 19:45:00 -0500'),
    }


@pytest.fixture
def mock_api(sample_labels, sample_headers) -> MockGmailApi:
    """Two pages of results: [a, b] then [c]"""
    return MockGmailApi(labels=sample_labels, pages=[['a', 'b'], ['c']], headers=sample_headers)


@pytest.fixture
def empty_api(sample_labels) -> MockGmailApi:
    return MockGmailApi(labels=sample_labels, pages=[])


@pytest.fixture
def gmail_service(mock_api) -> GmailService:
    return make_service(mock_api)


@pytest.fixture
def label_map() -> Dict[str, str]:
    return {'INBOX': 'INBOX', 'retention/5-years': 'LBL_1', 'retention/1-weeks': 'LBL_2'}


@pytest.fixture
def five_year_rules() -> RuleSet:
    """One trash rule: id 1, label retention/5-years, y:5"""
    rules = RuleSet()
    rules.add(Retention(MessageAge(Period.YEARS, 5), generate_label=True))
    return rules


@pytest.fixture
def five_year_delete_rules() -> RuleSet:
    rules = RuleSet()
    rules.add(Retention(MessageAge(Period.YEARS, 5), generate_label=True), delete=True)
    assert rules.get(1).action() is Action.DELETE
    return rules


@pytest.fixture
def api_factory(sample_labels, sample_headers):
    """Build a MockGmailApi with the sample labels and headers"""
    def _factory(pages: Optional[List[List[str]]] = None, **kwargs) -> MockGmailApi:
        kwargs.setdefault('labels', sample_labels)
        kwargs.setdefault('headers', sample_headers)
        return MockGmailApi(pages=pages, **kwargs)
    return _factory


@pytest.fixture
def service_factory():
    """Wrap a MockGmailApi in a GmailService"""
    return make_service
