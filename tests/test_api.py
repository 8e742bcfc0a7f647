"""Tests for the HTTP endpoints."""

import hashlib

from fastapi.testclient import TestClient

from blob_transfer.core.exceptions import PermanentStoreError, TransientStoreError
from blob_transfer.core.memory_store import MemoryBlockStore
from blob_transfer.main import create_app
from conftest import FailingBlockStore


class UnreachableStore(MemoryBlockStore):
    """Store whose every read-side call fails as if the network were down."""

    async def exists(self, name):
        raise TransientStoreError("connection refused", name=name)

    async def ping(self):
        raise TransientStoreError("connection refused")


def test_index_shows_upload_form(client):
    response = client.get('/')
    assert response.status_code == 200
    assert 'enctype="multipart/form-data"' in response.text
    assert 'name="file"' in response.text


def test_upload_redirects_to_success(client, recording_store):
    response = client.post(
        '/upload',
        files={'file': ('hello.txt', b'hello world' * 300, 'text/plain')},
        follow_redirects=False
    )

    assert response.status_code == 303
    assert response.headers['location'] == '/success?fileName=hello.txt'
    assert recording_store.objects['hello.txt'] == (b'hello world' * 300, 'text/plain')
    # 3300 bytes in 1024-byte blocks
    assert [size for _, _, size in recording_store.staged] == [1024, 1024, 1024, 228]
    assert len(recording_store.committed_block_lists) == 1


def test_upload_of_empty_file_redirects_to_error(client, recording_store):
    response = client.post(
        '/upload',
        files={'file': ('empty.txt', b'', 'text/plain')},
        follow_redirects=False
    )

    assert response.status_code == 303
    assert response.headers['location'] == '/error?kind=invalid_input'
    assert recording_store.stats.uploads_begun == 0
    assert recording_store.staged == []
    assert recording_store.committed_block_lists == []


def test_upload_without_file_redirects_to_error(client, recording_store):
    response = client.post('/upload', data={'other': 'field'}, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers['location'] == '/error?kind=invalid_input'
    assert recording_store.stats.uploads_begun == 0


def test_upload_keeps_only_last_path_component(client, recording_store):
    response = client.post(
        '/upload',
        files={'file': ('C:\\Users\\me\\report.csv', b'a,b\n1,2\n', 'text/csv')},
        follow_redirects=False
    )

    assert response.headers['location'] == '/success?fileName=report.csv'
    assert 'report.csv' in recording_store.objects


def test_success_and_error_pages(client):
    success = client.get('/success', params={'fileName': 'a&b.txt'})
    assert success.status_code == 200
    assert '/download?fileName=a%26b.txt' in success.text
    assert 'a&amp;b.txt' in success.text

    error = client.get('/error', params={'kind': 'transient'})
    assert error.status_code == 200
    assert 'temporarily unavailable' in error.text


def test_download_round_trip(client):
    data = bytes(range(256)) * 20
    client.post('/upload', files={'file': ('blob.bin', data, 'application/x-custom')})

    response = client.get('/download', params={'fileName': 'blob.bin'})

    assert response.status_code == 200
    assert response.content == data
    assert response.headers['content-type'] == 'application/x-custom'
    assert response.headers['content-length'] == str(len(data))
    assert 'blob.bin' in response.headers['content-disposition']


def test_download_of_unknown_name_is_404(client):
    response = client.get('/download', params={'fileName': 'missing.txt'})

    assert response.status_code == 404
    body = response.json()
    assert body['success'] is False
    assert body['error_code'] == 'not_found'


def test_download_without_name_is_400(client):
    response = client.get('/download')

    assert response.status_code == 400
    assert response.json()['error_code'] == 'invalid_input'


def test_put_object_streams_raw_body(client, recording_store):
    data = b'0123456789' * 250

    response = client.put(
        '/objects/reports/q1.csv',
        content=data,
        headers={'Content-Type': 'text/csv'}
    )

    assert response.status_code == 200
    body = response.json()
    assert body['success'] is True
    assert body['data']['name'] == 'reports/q1.csv'
    assert body['data']['container'] == 'test-uploads'
    assert body['data']['size_bytes'] == 2500
    assert body['data']['block_count'] == 3
    assert body['data']['sha256'] == hashlib.sha256(data).hexdigest()
    assert recording_store.objects['reports/q1.csv'] == (data, 'text/csv')


def test_put_object_detects_content_type(client, recording_store):
    client.put('/objects/doc.pdf', content=b'%PDF-1.4')

    assert recording_store.objects['doc.pdf'][1] == 'application/pdf'


def test_put_empty_object_is_400(client, recording_store):
    response = client.put('/objects/empty.bin', content=b'')

    assert response.status_code == 400
    assert response.json()['error_code'] == 'invalid_input'
    assert recording_store.stats.uploads_begun == 0


def test_health_check(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.json() == {
        'status': 'healthy',
        'storage_backend': 'memory',
        'storage_connection': 'ok',
    }


def test_store_outage_maps_to_503(test_settings):
    app = create_app(test_settings, UnreachableStore(container='test-uploads'))
    with TestClient(app) as client:
        download = client.get('/download', params={'fileName': 'anything.txt'})
        health = client.get('/health')

    assert download.status_code == 503
    assert download.json()['error_code'] == 'transient'
    assert health.status_code == 503
    assert health.json()['status'] == 'unhealthy'


def test_upload_stage_failure_redirects_to_transient_error(test_settings):
    store = FailingBlockStore(fail_stage_at=1, container='test-uploads')
    with TestClient(create_app(test_settings, store)) as client:
        response = client.post(
            '/upload',
            files={'file': ('big.bin', b'z' * 3000, 'application/octet-stream')},
            follow_redirects=False
        )

    assert response.status_code == 303
    assert response.headers['location'] == '/error?kind=transient'
    assert store.stats.aborts == 1
    assert store.objects == {}


def test_upload_commit_rejection_redirects_to_permanent_error(test_settings):
    store = FailingBlockStore(fail_commit=True, error=PermanentStoreError, container='test-uploads')
    with TestClient(create_app(test_settings, store)) as client:
        response = client.post(
            '/upload',
            files={'file': ('big.bin', b'z' * 3000, 'application/octet-stream')},
            follow_redirects=False
        )

    assert response.status_code == 303
    assert response.headers['location'] == '/error?kind=permanent'
    assert store.stats.aborts == 1
    assert store.objects == {}
