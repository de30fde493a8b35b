#!/usr/bin/env python3
"""Unit tests for request signing, envelopes and errors in client.py."""

import base64
import hashlib
import hmac
import json
import sys
import unittest
import urllib.parse
from unittest.mock import patch, MagicMock
from pathlib import Path

import urllib3

# Add parent directory to path to import cstemplate
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cstemplate.client import CloudStackClient, create_client, sign_request, _build_query_string
from cstemplate.config import MainSettings, RegisterSettings, DeleteSettings
from cstemplate.create_functions import register_templates
from cstemplate.errors import CloudStackError
from cstemplate.functions import delete_templates

ENDPOINT = 'http://cloud.example.com:8080/client/api'


class FakeResponse:
    def __init__(self, status, payload, headers=None):
        self.status = status
        self.data = json.dumps(payload).encode('utf-8') if payload is not None else b''
        self.headers = headers or {}


def _query(url):
    return urllib.parse.parse_qs(url.split('?', 1)[1])


class TestSignRequest(unittest.TestCase):

    def test_signature_is_hmac_sha1_of_sorted_lowercased_query(self):
        params = {'response': 'json', 'command': 'listZones', 'apiKey': 'AbC'}
        expected_query = 'apikey=abc&command=listzones&response=json'
        expected = base64.b64encode(
            hmac.new(b'secret', expected_query.encode(), hashlib.sha1).digest()
        ).decode()
        self.assertEqual(sign_request(params, 'secret'), expected)

    def test_signature_independent_of_parameter_order(self):
        a = {'command': 'listTemplates', 'templatefilter': 'all', 'apiKey': 'k'}
        b = {'apiKey': 'k', 'templatefilter': 'all', 'command': 'listTemplates'}
        self.assertEqual(sign_request(a, 's'), sign_request(b, 's'))

    def test_pre_escaped_values_are_sent_unchanged(self):
        query = _build_query_string({'keyword': 'centos%256.5', 'url': 'http%3A%2F%2Fx', 'name': 'a b'})
        self.assertEqual(query, 'keyword=centos%256.5&name=a%20b&url=http%3A%2F%2Fx')


class TestCloudStackClient(unittest.TestCase):

    def setUp(self):
        self.pool = MagicMock()
        self.client = CloudStackClient(ENDPOINT, apikey='KEY', secretkey='SECRET', pool_manager=self.pool)

    def test_missing_endpoint_raises(self):
        with self.assertRaises(ValueError):
            CloudStackClient('', apikey='k', secretkey='s', pool_manager=self.pool)

    def test_list_templates_signed_request(self):
        self.pool.request.return_value = FakeResponse(200, {
            'listtemplatesresponse': {'count': 1, 'template': [{'id': 'abc', 'name': 'centos'}]}
        })
        templates = self.client.list_templates(template_filter='all', keyword='centos%256')

        self.assertEqual(templates, [{'id': 'abc', 'name': 'centos'}])
        method, url = self.pool.request.call_args[0][:2]
        self.assertEqual(method, 'GET')
        self.assertTrue(url.startswith(ENDPOINT + '?'))
        self.assertIn('keyword=centos%256', url)
        query = _query(url)
        self.assertEqual(query['command'], ['listTemplates'])
        self.assertEqual(query['templatefilter'], ['all'])
        self.assertEqual(query['apiKey'], ['KEY'])
        self.assertEqual(query['response'], ['json'])
        self.assertIn('signature', query)
        self.assertNotIn('id', query)

    def test_empty_listing_returns_empty_list(self):
        self.pool.request.return_value = FakeResponse(200, {'listtemplatesresponse': {}})
        self.assertEqual(self.client.list_templates(template_id='gone'), [])

    def test_register_template_parameters(self):
        self.pool.request.return_value = FakeResponse(200, {
            'registertemplateresponse': {'count': 1, 'template': [{'id': 'new-id'}]}
        })
        result = self.client.register_template(
            name='centos', display_text='centos', format='QCOW2', hypervisor='KVM',
            ostype_id='os-1', url='http%3A%2F%2Fx%2Fc.qcow2', zone_id='zone-1',
            is_public=True, password_enabled=False
        )
        self.assertEqual(result, [{'id': 'new-id'}])
        url = self.pool.request.call_args[0][1]
        self.assertIn('url=http%3A%2F%2Fx%2Fc.qcow2', url)
        query = _query(url)
        self.assertEqual(query['ispublic'], ['true'])
        self.assertEqual(query['passwordenabled'], ['false'])
        self.assertEqual(query['ostypeid'], ['os-1'])
        self.assertEqual(query['zoneid'], ['zone-1'])

    def test_delete_template_returns_envelope(self):
        self.pool.request.return_value = FakeResponse(200, {'deletetemplateresponse': {'jobid': 'job-1'}})
        self.assertEqual(self.client.delete_template('abc'), {'jobid': 'job-1'})

    def test_error_envelope_raises(self):
        self.pool.request.return_value = FakeResponse(431, {
            'deletetemplateresponse': {'errorcode': 431, 'errortext': 'Unable to find template'}
        })
        with self.assertRaises(CloudStackError) as ctx:
            self.client.delete_template('missing')
        self.assertEqual(ctx.exception.status, 431)
        self.assertEqual(ctx.exception.error_code, 431)
        self.assertIn('Unable to find template', str(ctx.exception))

    def test_non_json_error_raises(self):
        response = FakeResponse(503, None)
        response.data = b'Service Unavailable'
        self.pool.request.return_value = response
        with self.assertRaises(CloudStackError) as ctx:
            self.client.list_zones('zone1')
        self.assertIn('Service Unavailable', str(ctx.exception))


class TestSessionLogin(unittest.TestCase):

    def test_login_then_request_with_session(self):
        pool = MagicMock()
        pool.request.side_effect = [
            FakeResponse(200, {'loginresponse': {'sessionkey': 'sk-1'}},
                         headers={'Set-Cookie': 'JSESSIONID=abc123; Path=/client; HttpOnly'}),
            FakeResponse(200, {'listzonesresponse': {'count': 1, 'zone': [{'id': 'z1'}]}}),
        ]
        client = CloudStackClient(ENDPOINT, username='admin', password='pw', pool_manager=pool)

        self.assertEqual(client.list_zones('zone1'), [{'id': 'z1'}])
        login_call, list_call = pool.request.call_args_list
        self.assertEqual(login_call[0][0], 'POST')
        self.assertEqual(login_call[1]['fields']['command'], 'login')
        url = list_call[0][1]
        self.assertEqual(_query(url)['sessionkey'], ['sk-1'])
        self.assertNotIn('signature', _query(url))
        self.assertEqual(list_call[1]['headers']['Cookie'], 'JSESSIONID=abc123')

    def test_no_credentials_raises(self):
        client = CloudStackClient(ENDPOINT, pool_manager=MagicMock())
        with self.assertRaises(ValueError):
            client.list_zones('zone1')


def _timeout_error():
    reason = urllib3.exceptions.ReadTimeoutError(None, '/client/api', 'read timed out')
    return urllib3.exceptions.MaxRetryError(None, '/client/api', reason=reason)


class TestTransportFailures(unittest.TestCase):
    """Connection errors surface as CloudStackError and do not stop a batch."""

    def setUp(self):
        self.pool = MagicMock()
        self.client = CloudStackClient(ENDPOINT, apikey='KEY', secretkey='SECRET', pool_manager=self.pool)
        self.lines = []

    def test_request_timeout_raises_cloudstack_error(self):
        self.pool.request.side_effect = _timeout_error()
        with self.assertRaises(CloudStackError) as ctx:
            self.client.list_zones('zone1')
        self.assertEqual(ctx.exception.command, 'listZones')
        self.assertEqual(ctx.exception.status, 0)

    def test_login_connection_error_raises_cloudstack_error(self):
        self.pool.request.side_effect = urllib3.exceptions.NewConnectionError(None, 'connection refused')
        client = CloudStackClient(ENDPOINT, username='admin', password='pw', pool_manager=self.pool)
        with self.assertRaises(CloudStackError) as ctx:
            client.list_zones('zone1')
        self.assertEqual(ctx.exception.command, 'login')

    def test_register_continues_after_timeout(self):
        self.pool.request.side_effect = [
            FakeResponse(200, {'listostypesresponse': {'count': 1, 'ostype': [{'id': 'os-1'}]}}),
            FakeResponse(200, {'listzonesresponse': {'count': 1, 'zone': [{'id': 'zone-1'}]}}),
            _timeout_error(),
            FakeResponse(200, {'registertemplateresponse': {'count': 1, 'template': [{'id': 't2'}]}}),
            FakeResponse(200, {'listtemplatesresponse': {'count': 1, 'template': [{'id': 't2', 'isready': True, 'size': 1024}]}}),
        ]
        main = MainSettings(endpoint=ENDPOINT, zonename='zone1', format='QCOW2', hypervisor='KVM')
        settings = RegisterSettings(ostype='CentOS', password_enabled=False,
                                    templates=[('first', 'http://x/1'), ('second', 'http://x/2')])

        summary = register_templates(self.client, main, settings, out=self.lines.append, sleep=MagicMock())

        self.assertEqual(list(summary.failed), ['first'])
        self.assertEqual(list(summary.registered), ['second'])
        self.assertEqual(self.pool.request.call_count, 5)
        self.assertEqual(self.lines[-1], 'register 2 templates.')

    def test_delete_continues_after_timeout(self):
        self.pool.request.side_effect = [
            _timeout_error(),
            FakeResponse(200, {'deletetemplateresponse': {'jobid': 'j2'}}),
            FakeResponse(200, {'deletetemplateresponse': {'jobid': 'j3'}}),
        ]

        summary = delete_templates(self.client, DeleteSettings(ids=['a', 'b', 'c']), out=self.lines.append)

        self.assertEqual(list(summary.failed), ['a'])
        self.assertEqual(summary.deleted, ['b', 'c'])
        self.assertEqual(self.pool.request.call_count, 3)
        self.assertEqual(self.lines[-1], 'delete 3 templates.')


class TestCreateClient(unittest.TestCase):

    @patch('cstemplate.client.CloudStackClient')
    def test_secrets_are_resolved(self, client_cls):
        settings = MainSettings(endpoint=ENDPOINT, apikey='KEY', secretkey='base64:czNjcmV0', verifyssl=False)
        create_client(settings)
        kwargs = client_cls.call_args[1]
        self.assertEqual(kwargs['secretkey'], 's3cret')
        self.assertFalse(kwargs['verify_ssl'])


if __name__ == '__main__':
    unittest.main()
