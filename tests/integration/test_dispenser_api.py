"""
Integration tests for the dispenser registry endpoints.
The hardware health check is mocked at requests.get.
"""
import json
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests
from django.utils import timezone

from dispensing.models import Dispenser
from tests.conftest import DispenserFactory


def post_json(api_client, url, payload=None):
    response = api_client.post(url, data=json.dumps(payload or {}), content_type='application/json')
    return response.status_code, json.loads(response.content)


def get_json(api_client, url):
    response = api_client.get(url)
    return response.status_code, json.loads(response.content)


@pytest.mark.django_db
class TestRegister:

    def test_register(self, api_client):
        status, body = post_json(api_client, '/api/dispensers/register', {
            'dispenserId': 'dispenser-01', 'ipAddress': '192.168.1.40', 'port': 8081,
            'metadata': {'firmware': '2.0'},
        })

        assert status == 200
        assert body['dispenser']['status'] == 'online'
        assert body['dispenser']['port'] == 8081
        assert body['dispenser']['metadata']['firmware'] == '2.0'
        assert Dispenser.objects.filter(dispenser_id='dispenser-01').exists()

    def test_register_twice_updates(self, api_client):
        post_json(api_client, '/api/dispensers/register', {'dispenserId': 'dispenser-01', 'ipAddress': '10.0.0.1'})
        post_json(api_client, '/api/dispensers/register', {'dispenserId': 'dispenser-01', 'ipAddress': '10.0.0.2'})

        assert Dispenser.objects.get().ip_address == '10.0.0.2'

    def test_missing_ip(self, api_client):
        status, body = post_json(api_client, '/api/dispensers/register', {'dispenserId': 'dispenser-01'})

        assert status == 400
        assert body['code'] == 'MISSING_FIELDS'

    @pytest.mark.parametrize('port', [0, 70000, '8080', True])
    def test_bad_port(self, api_client, port):
        status, body = post_json(api_client, '/api/dispensers/register', {
            'dispenserId': 'dispenser-01', 'ipAddress': '10.0.0.1', 'port': port,
        })

        assert status == 400
        assert body['code'] == 'INVALID_PARAMETER'


@pytest.mark.django_db
class TestLifecycle:

    def test_heartbeat(self, api_client):
        DispenserFactory(dispenser_id='dispenser-01', last_heartbeat=timezone.now() - timedelta(minutes=10))

        status, body = post_json(api_client, '/api/dispensers/dispenser-01/heartbeat')

        assert status == 200
        assert body['dispenser']['isOnline'] is True

    def test_heartbeat_unknown(self, api_client):
        status, body = post_json(api_client, '/api/dispensers/ghost/heartbeat')

        assert status == 404
        assert body['code'] == 'DISPENSER_NOT_FOUND'

    def test_unregister(self, api_client):
        DispenserFactory(dispenser_id='dispenser-01')

        status, body = post_json(api_client, '/api/dispensers/dispenser-01/unregister')

        assert status == 200
        assert not Dispenser.objects.exists()

    def test_detail(self, api_client):
        DispenserFactory(dispenser_id='dispenser-01', last_heartbeat=timezone.now() - timedelta(minutes=10))

        status, body = get_json(api_client, '/api/dispensers/dispenser-01')

        assert status == 200
        assert body['dispenser']['status'] == 'offline'

    def test_list(self, api_client):
        DispenserFactory(dispenser_id='dispenser-01')
        DispenserFactory(dispenser_id='dispenser-02', last_heartbeat=timezone.now() - timedelta(hours=1))

        status, body = get_json(api_client, '/api/dispensers')

        assert status == 200
        assert (body['total'], body['online'], body['offline']) == (2, 1, 1)
        assert len(body['dispensers']) == 2


@pytest.mark.django_db
class TestHealthCheck:

    @patch('dispensing.notifications.requests.get')
    def test_reachable(self, mock_get, api_client):
        mock_get.return_value = MagicMock(status_code=200)
        DispenserFactory(dispenser_id='dispenser-01', ip_address='10.0.0.9', port=8080)

        status, body = get_json(api_client, '/api/dispensers/dispenser-01/health')

        assert status == 200
        assert body == {'success': True, 'dispenserId': 'dispenser-01', 'reachable': True, 'isOnline': True}
        mock_get.assert_called_once_with('http://10.0.0.9:8080/health', timeout=3)

    @patch('dispensing.notifications.requests.get')
    def test_unreachable(self, mock_get, api_client):
        mock_get.side_effect = requests.ConnectionError('no route')
        DispenserFactory(dispenser_id='dispenser-01')

        _, body = get_json(api_client, '/api/dispensers/dispenser-01/health')

        assert body['reachable'] is False

    def test_unknown_dispenser(self, api_client):
        status, _ = get_json(api_client, '/api/dispensers/ghost/health')
        assert status == 404
