"""
Tests for operational endpoints, error rendering and process hooks.
"""
import sys
import threading
from unittest import mock

from sqlalchemy.exc import OperationalError

from photo_enhancer import errors
from photo_enhancer.store import Store


class TestOperationalEndpoints:

    def test_root(self, client):
        response = client.get('/')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'running'

    def test_api_index_lists_endpoints(self, client):
        data = client.get('/api/').get_json()
        assert 'POST /api/images/enhance' in data['endpoints']

    def test_health(self, client):
        data = client.get('/api/health').get_json()
        assert data['status'] == 'healthy'
        assert data['database'] == 'connected'
        assert data['uptime'] >= 0

    def test_db_status_reflects_store(self, client, monkeypatch):
        assert client.get('/api/db-status').get_json() == {'connected': True}

        def broken_ping(self):
            raise OperationalError('SELECT 1', {}, Exception('down'))
        monkeypatch.setattr(Store, 'ping', broken_ping)
        assert client.get('/api/db-status').get_json() == {'connected': False}
        assert client.get('/api/test').get_json()['database'] == 'disconnected'

    def test_store_outage_fails_download_fast(self, client, monkeypatch):
        def broken_ping(self):
            raise OperationalError('SELECT 1', {}, Exception('down'))
        monkeypatch.setattr(Store, 'ping', broken_ping)
        response = client.get('/api/images/download/whatever.jpg?token=abc')
        assert response.status_code == 503


class TestErrorRendering:

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert response.get_json() == {'error': 'Route not found'}

    def test_wrong_method_is_json(self, client):
        response = client.get('/api/images/enhance')
        assert response.status_code == 405
        assert 'error' in response.get_json()

    def test_security_headers(self, client):
        response = client.get('/api/health')
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert response.headers['X-Frame-Options'] == 'DENY'

    def test_api_error_to_dict(self):
        error = errors.PipelineError('Enhance failed', details='timeout')
        assert error.to_dict() == {'error': 'Enhance failed', 'details': 'timeout'}
        assert error.to_dict(expose_details=False) == {'error': 'Enhance failed'}
        assert errors.StoreUnavailable().status_code == 503


class TestProcessHooks:

    def test_uncaught_exception_schedules_exit(self, monkeypatch):
        monkeypatch.setattr(sys, 'excepthook', sys.excepthook)
        monkeypatch.setattr(threading, 'excepthook', threading.excepthook)
        with mock.patch.object(errors.threading, 'Timer') as timer:
            excepthook, _ = errors.install_process_hooks(delay=0.5, exit_code=3)
            assert sys.excepthook is excepthook
            try:
                raise RuntimeError('boom')
            except RuntimeError:
                excepthook(*sys.exc_info())
        timer.assert_called_once()
        args, kwargs = timer.call_args
        assert args[0] == 0.5
        assert kwargs['args'] == (3,)
        timer.return_value.start.assert_called_once()

    def test_thread_system_exit_is_ignored(self, monkeypatch):
        monkeypatch.setattr(sys, 'excepthook', sys.excepthook)
        monkeypatch.setattr(threading, 'excepthook', threading.excepthook)
        with mock.patch.object(errors.threading, 'Timer') as timer:
            _, thread_hook = errors.install_process_hooks()
            thread_hook(mock.Mock(exc_type=SystemExit))
        timer.assert_not_called()
