"""
Tests for the like / download-count endpoints and their degrade policy.
"""
import copy
import json

import pytest

from api import _counters
from api._shared import load_settings
from api._store import VersionedDocumentStore, find_image
from conftest import FakeContentsAPI, FakeResponse


@pytest.fixture
def configured(monkeypatch, contents_api):
    monkeypatch.setenv('GITHUB_TOKEN', 'test-token')
    monkeypatch.setattr(_counters, 'build_store',
                        lambda settings: VersionedDocumentStore(settings.github_token, session=contents_api))
    return contents_api


class TestLikeEndpoint:

    def test_like_increments_and_persists(self, client, configured):
        resp = client.post('/api/like', json={'imageId': 'img_0001'})
        assert resp.status_code == 200
        assert resp.get_json() == {'status': 'success', 'likes': 3}
        assert find_image(configured.document, 'img_0001')['likes'] == 3
        assert configured.puts[0][2]['message'] == 'Update like stats'

    def test_unknown_image_is_404(self, client, configured):
        resp = client.post('/api/like', json={'imageId': 'img_9999'})
        assert resp.status_code == 404
        assert resp.get_json() == {'status': 'error', 'error': 'Image not found'}
        assert configured.puts == []

    def test_missing_image_id_is_400(self, client, configured):
        resp = client.post('/api/like', json={})
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'imageId is required'

    def test_malformed_json_is_400(self, client, configured):
        resp = client.post('/api/like', data='{not json', content_type='application/json')
        assert resp.status_code == 400

    def test_get_is_405(self, client):
        resp = client.get('/api/like')
        assert resp.status_code == 405
        assert resp.get_json()['error'] == 'Method not allowed'

    def test_options_preflight(self, client):
        resp = client.options('/api/like')
        assert resp.status_code == 200
        assert resp.headers['Access-Control-Allow-Origin'] == '*'
        assert 'POST' in resp.headers['Access-Control-Allow-Methods']

    def test_without_token_like_is_local_only(self, client, contents_api):
        resp = client.post('/api/like', json={'imageId': 'img_0001'})
        assert resp.status_code == 200
        assert resp.get_json() == {'status': 'success', 'message': 'Like counted (local only)'}
        assert contents_api.calls == []

    def test_without_token_strict_mode_is_503(self, client, monkeypatch):
        monkeypatch.setenv('DEGRADE_LIKE_FAILURES', '0')
        resp = client.post('/api/like', json={'imageId': 'img_0001'})
        assert resp.status_code == 503


class TestDownloadEndpoint:

    def test_download_returns_url_file_name_and_count(self, client, configured):
        resp = client.post('/api/download-image', json={'imageId': 'img_0001'})
        assert resp.status_code == 200
        assert resp.get_json() == {
            'status': 'success',
            'downloads': 6,
            'downloadUrl': 'https://content.holara.ai/rem.jpg',
            'fileName': 'Rem_img_0001.jpg',
        }

    def test_missing_document_is_404(self, client, configured):
        configured.status = 404
        resp = client.post('/api/download-image', json={'imageId': 'img_0001'})
        assert resp.status_code == 404
        assert resp.get_json()['error'] == 'Image not found'


class TestDegradePolicy:

    def _settings(self, monkeypatch, **env):
        monkeypatch.setenv('GITHUB_TOKEN', 't')
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return load_settings()

    def _always_conflicting_store(self, gallery_doc, put_status=409):
        class AlwaysStale(FakeContentsAPI):
            def request(self, method, url, **kwargs):
                if method == 'PUT':
                    self.calls.append((method, url, kwargs.get('json')))
                    return FakeResponse(put_status)
                return super().request(method, url, **kwargs)

        api = AlwaysStale(copy.deepcopy(gallery_doc))
        return api, VersionedDocumentStore('t', session=api)

    def test_dropped_update_is_soft_success(self, monkeypatch, gallery_doc):
        settings = self._settings(monkeypatch, COUNTER_MAX_RETRIES='2')
        api, store = self._always_conflicting_store(gallery_doc)
        body, status, _ = _counters.increment_counter(_counters.LIKES, 'img_0001', settings, True, store=store)
        assert status == 200
        assert 'not persisted' in body
        assert len(api.puts) == 2

    def test_dropped_download_still_returns_the_download_url(self, monkeypatch, gallery_doc):
        settings = self._settings(monkeypatch)
        api, store = self._always_conflicting_store(gallery_doc)
        on_applied = lambda image: {'downloadUrl': image['fullUrl']}  # noqa: E731

        body, status, _ = _counters.increment_counter(_counters.DOWNLOADS, 'img_0001', settings, True,
                                                      store=store, on_applied=on_applied)

        assert status == 200
        assert json.loads(body) == {
            'status': 'success',
            'message': 'Download counted (not persisted)',
            'downloadUrl': 'https://content.holara.ai/rem.jpg',
        }
        assert find_image(api.document, 'img_0001')['downloads'] == 5

    def test_dropped_download_through_the_endpoint(self, client, monkeypatch, gallery_doc):
        monkeypatch.setenv('GITHUB_TOKEN', 't')
        _, store = self._always_conflicting_store(gallery_doc)
        monkeypatch.setattr(_counters, 'build_store', lambda settings: store)

        body = client.post('/api/download-image', json={'imageId': 'img_0001'}).get_json()

        assert body['downloadUrl'] == 'https://content.holara.ai/rem.jpg'
        assert body['fileName'] == 'Rem_img_0001.jpg'
        assert 'downloads' not in body

    def test_write_without_permission_is_not_image_not_found(self, monkeypatch, gallery_doc):
        settings = self._settings(monkeypatch)
        _, store = self._always_conflicting_store(gallery_doc, put_status=404)

        body, status, _ = _counters.increment_counter(_counters.LIKES, 'img_0001', settings, True, store=store)
        assert status == 200
        assert 'Like counted (local only)' in body

        _, status, _ = _counters.increment_counter(_counters.LIKES, 'img_0001', settings, False, store=store)
        assert status == 503

    def test_dropped_update_strict_is_409(self, monkeypatch, gallery_doc):
        settings = self._settings(monkeypatch)
        _, store = self._always_conflicting_store(gallery_doc)
        _, status, _ = _counters.increment_counter(_counters.LIKES, 'img_0001', settings, False, store=store)
        assert status == 409

    @pytest.mark.parametrize('remote_status, strict_status', [(500, 502), (401, 503)])
    def test_store_failures(self, monkeypatch, contents_api, remote_status, strict_status):
        settings = self._settings(monkeypatch)
        contents_api.status = remote_status
        store = VersionedDocumentStore('t', session=contents_api)

        body, status, _ = _counters.increment_counter(_counters.DOWNLOADS, 'img_0001', settings, True, store=store)
        assert status == 200
        assert 'Download counted (local only)' in body

        _, status, _ = _counters.increment_counter(_counters.DOWNLOADS, 'img_0001', settings, False, store=store)
        assert status == strict_status
