"""
Optimistic read-modify-write access to a JSON document kept in a GitHub repo.

The Contents API has no server-side increment and no transactions, so every
update reads the document with its blob sha, mutates a private copy and
writes it back with that sha. GitHub rejects the write when someone else got
there first and the update is retried from a fresh read.
"""
import base64
import binascii
import copy
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

import requests

from api._shared import logger

DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_S = 10


class StoreError(Exception):
    pass


class NotFound(StoreError):
    pass


class AuthError(StoreError):
    pass


class TransportError(StoreError):
    pass


class VersionConflict(StoreError):
    pass


class InvalidDocument(StoreError):
    pass


class RecordNotFound(Exception):
    """Raised by a mutation when the record it targets is not in the document."""


@dataclass(frozen=True)
class RemoteDocument:
    content: object
    version_tag: str


@dataclass(frozen=True)
class MutationResult:
    status: str
    version_tag: str | None = None
    content: object = None
    attempts: int = 0

    APPLIED = 'applied'
    CONFLICT = 'conflict'
    NOT_FOUND = 'not_found'

    @classmethod
    def applied(cls, version_tag, content, attempts):
        return cls(cls.APPLIED, version_tag, content, attempts)

    @classmethod
    def conflict(cls, attempts, content=None):
        # content is the last document read, not a persisted state
        return cls(cls.CONFLICT, content=content, attempts=attempts)

    @classmethod
    def not_found(cls, attempts):
        return cls(cls.NOT_FOUND, attempts=attempts)

    @property
    def ok(self) -> bool:
        return self.status == self.APPLIED


class VersionedDocumentStore:
    def __init__(self, token: str, api_base: str = 'https://api.github.com', branch: str = '',
                 timeout: float = DEFAULT_TIMEOUT_S, session=None):
        self.token = (token or '').strip()
        self.api_base = api_base.rstrip('/')
        self.branch = branch
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, collection: str, path: str) -> str:
        return f"{self.api_base}/repos/{collection.strip('/')}/contents/{quote(path.lstrip('/'))}"

    def _headers(self) -> dict:
        if not self.token:
            raise AuthError('GitHub token not configured')
        return {
            'Authorization': f'token {self.token}',
            'Accept': 'application/vnd.github.v3+json',
        }

    def _send(self, method: str, url: str, **kwargs):
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise TransportError(f'{method} {url} timed out after {self.timeout}s') from e
        except requests.RequestException as e:
            raise TransportError(f'{method} {url} failed: {e}') from e

    @staticmethod
    def _raise_for_auth(resp, action: str):
        if resp.status_code in (401, 403):
            raise AuthError(f'{action} rejected credentials ({resp.status_code})')

    def read(self, collection: str, path: str) -> RemoteDocument:
        url = self._url(collection, path)
        params = {'ref': self.branch} if self.branch else None
        resp = self._send('GET', url, headers=self._headers(), params=params)
        if resp.status_code == 404:
            raise NotFound(f'{collection}/{path} not found')
        self._raise_for_auth(resp, 'read')
        if not 200 <= resp.status_code < 300:
            raise TransportError(f'read {collection}/{path} returned {resp.status_code}')
        try:
            meta = resp.json()
        except ValueError as e:
            raise InvalidDocument(f'{collection}/{path}: metadata is not JSON') from e
        sha = meta.get('sha') if isinstance(meta, dict) else None
        if not sha:
            raise InvalidDocument(f'{collection}/{path}: response carries no sha')
        return RemoteDocument(_decode_content(meta), sha)

    def write(self, collection: str, path: str, content, expected_version_tag: str,
              commit_message: str) -> str:
        url = self._url(collection, path)
        text = json.dumps(content, indent=2, ensure_ascii=False)
        body = {
            'message': commit_message,
            'content': base64.b64encode(text.encode('utf-8')).decode('ascii'),
            'sha': expected_version_tag,
        }
        if self.branch:
            body['branch'] = self.branch
        resp = self._send('PUT', url, headers=self._headers(), json=body)
        # 409: sha is stale, 422: sha missing or no longer matches
        if resp.status_code in (409, 422):
            raise VersionConflict(f'{collection}/{path} changed since {expected_version_tag}')
        self._raise_for_auth(resp, 'write')
        # GitHub hides repos the token cannot write to behind a 404
        if resp.status_code == 404:
            raise AuthError(f'write {collection}/{path} returned 404, token lacks write access')
        if not 200 <= resp.status_code < 300:
            raise TransportError(f'write {collection}/{path} returned {resp.status_code}')
        try:
            return resp.json()['content']['sha']
        except (ValueError, KeyError, TypeError) as e:
            raise TransportError(f'write {collection}/{path}: unexpected response body') from e

    def apply_mutation(self, collection: str, path: str, mutate, max_retries: int = DEFAULT_MAX_RETRIES,
                       commit_message: str = 'Update document') -> MutationResult:
        """
        Read, mutate a private copy, write back conditioned on the sha.

        `mutate` takes the decoded document and returns the new one; raising
        RecordNotFound ends the operation without a write. Version conflicts
        are retried from a fresh read, `max_retries` attempts in total; when
        the budget runs out the update is dropped and a conflict result is
        returned. Every other store error propagates.
        """
        if max_retries < 1:
            raise ValueError('max_retries must be at least 1')
        for attempt in range(1, max_retries + 1):
            doc = self.read(collection, path)
            try:
                updated = mutate(copy.deepcopy(doc.content))
            except RecordNotFound as e:
                logger.info("[STORE] %s/%s: %s, nothing written", collection, path, e)
                return MutationResult.not_found(attempt)
            try:
                new_tag = self.write(collection, path, updated, doc.version_tag, commit_message)
            except VersionConflict:
                logger.info("[STORE] %s/%s conflict on attempt %d/%d (sha %s)",
                            collection, path, attempt, max_retries, doc.version_tag)
                continue
            return MutationResult.applied(new_tag, updated, attempt)
        logger.warning("[STORE] %s/%s: gave up after %d conflicting attempts, update dropped",
                       collection, path, max_retries)
        return MutationResult.conflict(max_retries, doc.content)


def _decode_content(meta: dict):
    raw = meta.get('content')
    if raw is None:
        raise InvalidDocument('response carries no content (file too large for the Contents API?)')
    if meta.get('encoding', 'base64') == 'base64':
        try:
            raw = base64.b64decode(raw).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError) as e:
            raise InvalidDocument('content is not valid base64 UTF-8') from e
    try:
        return json.loads(raw)
    except ValueError as e:
        raise InvalidDocument('content is not valid JSON') from e


# Image counters

def iso_now(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f'{now.microsecond // 1000:03d}Z'


def _parse_iso(value):
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def find_image(document, image_id: str):
    """First record whose id matches, or None."""
    for image in document.get('images') or []:
        if isinstance(image, dict) and image.get('id') == image_id:
            return image
    return None


def _counter_value(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def _increment(counter: str, stamp_field: str, image_id: str, clock=None):
    def mutate(document):
        if not isinstance(document, dict) or not isinstance(document.get('images'), list):
            raise InvalidDocument('document has no images list')
        image = find_image(document, image_id)
        if image is None:
            raise RecordNotFound(f'image {image_id} not found')
        now = clock() if clock else datetime.now(timezone.utc)
        previous = _parse_iso(image.get(stamp_field))
        if previous is not None and previous > now:
            now = previous
        image[counter] = _counter_value(image.get(counter)) + 1
        image[stamp_field] = iso_now(now)
        document['lastUpdate'] = iso_now(now)
        return document
    return mutate


def increment_downloads(image_id: str, clock=None):
    return _increment('downloads', 'lastDownload', image_id, clock)


def increment_likes(image_id: str, clock=None):
    return _increment('likes', 'lastLike', image_id, clock)
