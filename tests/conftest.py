import base64
import itertools
import json
import os
import sys
import threading

import pytest

# Add project root to path so `api` resolves like it does on Vercel
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

ENV_VARS = (
    'GITHUB_OWNER', 'GITHUB_REPO', 'GITHUB_BRANCH', 'GITHUB_TOKEN', 'IMAGES_PATH',
    'GITHUB_API_BASE', 'GITHUB_RAW_BASE', 'GITHUB_TIMEOUT_SECONDS', 'COUNTER_MAX_RETRIES',
    'DEGRADE_LIKE_FAILURES', 'DEGRADE_DOWNLOAD_FAILURES', 'SAMPLE_DATA_FALLBACK',
    'DISCORD_WEBHOOK_URL', 'DOWNLOAD_ALLOWED_HOSTS',
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b'', headers=None, url=''):
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.headers = headers or {}
        self.url = url

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError('no JSON body')
        return self._payload

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeContentsAPI:
    """
    In-memory stand-in for one file behind the GitHub Contents API, used as
    the store's session. Conditional puts are checked under a lock.
    """

    def __init__(self, document, sha='abc', status=None):
        self.document = document
        self.sha = sha
        self.status = status
        self.calls = []
        self.before_put = None
        self._lock = threading.Lock()
        self._shas = (f'sha{n}' for n in itertools.count(1))

    @property
    def puts(self):
        return [c for c in self.calls if c[0] == 'PUT']

    def set_remote(self, document, sha):
        with self._lock:
            self.document = document
            self.sha = sha

    def request(self, method, url, timeout=None, headers=None, params=None, json=None):
        self.calls.append((method, url, json))
        if self.status is not None:
            return FakeResponse(self.status)
        if method == 'GET':
            with self._lock:
                return FakeResponse(200, self._meta())
        if self.before_put is not None:
            hook, self.before_put = self.before_put, None
            hook(self)
        with self._lock:
            if json.get('sha') != self.sha:
                return FakeResponse(409, {'message': 'sha does not match'})
            self.document = _decode(json['content'])
            self.sha = next(self._shas)
            return FakeResponse(200, {'content': {'sha': self.sha}, 'commit': {'message': json['message']}})

    def _meta(self):
        text = json_dumps(self.document)
        return {
            'sha': self.sha,
            'encoding': 'base64',
            # GitHub wraps base64 at 60 columns
            'content': '\n'.join(_chunks(base64.b64encode(text.encode()).decode(), 60)),
        }


def json_dumps(value):
    return json.dumps(value, indent=2)


def _chunks(text, size):
    return [text[i:i + size] for i in range(0, len(text), size)]


def _decode(content):
    return json.loads(base64.b64decode(content).decode('utf-8'))


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def gallery_doc():
    return {
        'lastUpdate': '2024-01-01T00:00:00.000Z',
        'images': [
            {'id': 'img_0001', 'character': 'Rem', 'fullUrl': 'https://content.holara.ai/rem.jpg',
             'downloads': 5, 'likes': 2, 'lastLike': '2024-01-01T00:00:00.000Z'},
            {'id': 'img_0002', 'character': 'Aqua', 'fullUrl': 'https://content.holara.ai/aqua.jpg',
             'downloads': 0, 'likes': 0},
        ],
    }


@pytest.fixture
def contents_api(gallery_doc):
    return FakeContentsAPI(gallery_doc)


@pytest.fixture
def store(contents_api):
    from api._store import VersionedDocumentStore
    return VersionedDocumentStore('test-token', session=contents_api)


@pytest.fixture
def client():
    from api.index import app
    return app.test_client()
