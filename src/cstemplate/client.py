"""CloudStack management API client creation and utilities."""

import base64
import functools
import hashlib
import hmac
import http
import json
import logging
import os
import time
import urllib.parse
from typing import Dict, Any, Optional, List

import urllib3

from .config import MainSettings, API_CONNECT_TIMEOUT, API_READ_TIMEOUT, API_MAX_RETRIES
from .errors import CloudStackError
from .utils import retrieve_secret

SUCCESS_CODES = {http.HTTPStatus.OK,
                 http.HTTPStatus.CREATED,
                 http.HTTPStatus.ACCEPTED,
                 http.HTTPStatus.NON_AUTHORITATIVE_INFORMATION,
                 http.HTTPStatus.NO_CONTENT}

SOCKS_SCHEMES = ('socks4', 'socks4a', 'socks5', 'socks5h')

# Parameters never written to the log
_SECRET_PARAMS = {'password', 'signature', 'sessionkey', 'apiKey'}


def _get_proxy_url(host: str) -> Optional[str]:
    """Return the proxy URL to use for host, or None for a direct connection.

    HTTPS_PROXY, HTTP_PROXY and ALL_PROXY are checked in that order (upper or
    lower case). NO_PROXY entries match the exact host, a domain suffix with or
    without a leading dot, or everything with "*".
    """
    no_proxy = os.environ.get('NO_PROXY') or os.environ.get('no_proxy') or ''
    host = (host or '').lower()
    for entry in no_proxy.split(','):
        entry = entry.strip().lower()
        if not entry:
            continue
        if entry == '*':
            return None
        suffix = entry.lstrip('.')
        if host == suffix or host.endswith('.' + suffix):
            return None

    for var in ('HTTPS_PROXY', 'https_proxy', 'HTTP_PROXY', 'http_proxy', 'ALL_PROXY', 'all_proxy'):
        value = os.environ.get(var)
        if value:
            return value
    return None


def _create_pool_manager(proxy_url: Optional[str], **pool_kwargs) -> urllib3.PoolManager:
    """Create the urllib3 pool manager for a (possibly empty) proxy URL."""
    if not proxy_url:
        return urllib3.PoolManager(**pool_kwargs)

    scheme = proxy_url.split('://', 1)[0].lower()
    if scheme in SOCKS_SCHEMES:
        try:
            from urllib3.contrib.socks import SOCKSProxyManager
        except ImportError as e:
            raise ImportError(
                f"SOCKS proxy {proxy_url} requires PySocks. Install it with: pip install 'cstemplate[socks]'"
            ) from e
        return SOCKSProxyManager(proxy_url, **pool_kwargs)

    return urllib3.ProxyManager(proxy_url, **pool_kwargs)


def _quote(value: str) -> str:
    # Callers pre-escape literal % and the reserved characters of urls
    return urllib.parse.quote(value, safe='%*')


def _build_query_string(params: Dict[str, str]) -> str:
    """Build the canonical query string: sorted by name, values quoted."""
    return "&".join(
        f"{key}={_quote(value)}"
        for key, value in sorted(params.items(), key=lambda kv: kv[0].lower())
    )


def sign_request(params: Dict[str, str], secretkey: str) -> str:
    """Compute the API signature for a parameter set.

    The lower-cased canonical query string is signed with HMAC-SHA1 using the
    secret key and base64 encoded.
    """
    query = _build_query_string(params).lower()
    digest = hmac.new(secretkey.encode('utf-8'), query.encode('utf-8'), hashlib.sha1).digest()
    return base64.b64encode(digest).decode('utf-8')


def _stringify(params: Dict[str, Any]) -> Dict[str, str]:
    result = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = 'true' if value else 'false'
        result[key] = str(value)
    return result


def _loggable(params: Dict[str, str]) -> str:
    return "&".join(
        f"{key}={'***' if key in _SECRET_PARAMS else value}"
        for key, value in sorted(params.items())
    )


# Wrapper to log API calls
def api_call(func):
    """Log API calls with timing; failures are logged and re-raised."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.time()
        try:
            result = func(*args, **kwargs)
            elapsed = time.time() - start
            logging.debug(f"{func.__name__} succeeded in {elapsed:.2f}s")
            return result
        except Exception as e:
            elapsed = time.time() - start
            logging.error(f"✗ {func.__qualname__} failed in {elapsed:.2f}s: {e!r}")
            raise
    return wrapper


class CloudStackClient:
    """Minimal client for the template operations of the management API.

    Requests are signed with the API key pair when both keys are configured,
    otherwise the client logs in with username/password and reuses the
    session key and cookie.
    """

    def __init__(self, endpoint: str, apikey: str = '', secretkey: str = '', username: str = '',
                 password: str = '', verify_ssl: bool = True, ca_file: Optional[str] = None,
                 pool_manager: Optional[urllib3.PoolManager] = None):
        if not endpoint:
            raise ValueError("endpoint is not configured")
        self.endpoint = endpoint.rstrip('?')
        self.apikey = apikey
        self.secretkey = secretkey
        self.username = username
        self.password = password
        self._session_key = None
        self._session_cookie = None

        if pool_manager is None:
            host = urllib3.util.parse_url(self.endpoint).host
            pool_kwargs = {
                'retries': urllib3.util.Retry(total=API_MAX_RETRIES, redirect=API_MAX_RETRIES),
                'timeout': urllib3.util.Timeout(connect=API_CONNECT_TIMEOUT, read=API_READ_TIMEOUT),
            }
            if verify_ssl:
                pool_kwargs['cert_reqs'] = 'CERT_REQUIRED'
                if ca_file:
                    pool_kwargs['ca_certs'] = ca_file
            else:
                pool_kwargs['cert_reqs'] = 'CERT_NONE'
                urllib3.disable_warnings(category=urllib3.exceptions.InsecureRequestWarning)
            pool_manager = _create_pool_manager(_get_proxy_url(host), **pool_kwargs)
        self._pool = pool_manager

    @property
    def uses_api_keys(self) -> bool:
        return bool(self.apikey and self.secretkey)

    def _parse_response(self, command: str, response) -> Dict[str, Any]:
        """Unwrap the <command>response envelope, raising on API errors."""
        raw = response.data or b''
        try:
            payload = json.loads(raw.decode('utf-8')) if raw else {}
        except (ValueError, UnicodeDecodeError):
            payload = {}

        envelope = {}
        if isinstance(payload, dict):
            envelope = payload.get(f"{command.lower()}response")
            if envelope is None:
                envelope = next((v for k, v in payload.items() if k.endswith('response')), {})
        if not isinstance(envelope, dict):
            envelope = {}

        if response.status not in SUCCESS_CODES or 'errortext' in envelope:
            error_text = envelope.get('errortext') or raw.decode('utf-8', errors='replace')[:200] or 'no response body'
            raise CloudStackError(command, response.status, error_text, envelope.get('errorcode'))
        return envelope

    def login(self) -> None:
        """Open a session with username/password."""
        if not self.username:
            raise ValueError("neither apikey/secretkey nor username/password are configured")
        fields = {'command': 'login', 'username': self.username, 'password': self.password, 'response': 'json'}
        logging.debug(f"API Request: POST login username={self.username}")
        try:
            r = self._pool.request('POST', self.endpoint, fields=fields, encode_multipart=False)
        except urllib3.exceptions.HTTPError as e:
            raise CloudStackError('login', 0, str(e)) from e
        envelope = self._parse_response('login', r)
        self._session_key = envelope.get('sessionkey')
        cookie = r.headers.get('Set-Cookie', '')
        self._session_cookie = cookie.split(';', 1)[0] if cookie else None

    def request(self, command: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Issue one API command and return its unwrapped response."""
        query_params = _stringify(params or {})
        query_params['command'] = command
        query_params['response'] = 'json'
        headers = {}

        if self.uses_api_keys:
            query_params['apiKey'] = self.apikey
            query_string = _build_query_string(query_params)
            signature = sign_request(query_params, self.secretkey)
            url = f"{self.endpoint}?{query_string}&signature={urllib.parse.quote(signature, safe='')}"
        else:
            if self._session_key is None:
                self.login()
            query_params['sessionkey'] = self._session_key
            if self._session_cookie:
                headers['Cookie'] = self._session_cookie
            url = f"{self.endpoint}?{_build_query_string(query_params)}"

        logging.debug(f"API Request: GET {self.endpoint}?{_loggable(query_params)}")
        try:
            r = self._pool.request('GET', url, headers=headers)
        except urllib3.exceptions.HTTPError as e:
            # Transport failures (timeouts, refused connections) carry no HTTP status
            raise CloudStackError(command, 0, str(e)) from e
        return self._parse_response(command, r)

    @api_call
    def list_ostypes(self, keyword: str) -> List[Dict[str, Any]]:
        return self.request('listOsTypes', {'keyword': keyword}).get('ostype', [])

    @api_call
    def list_zones(self, keyword: str) -> List[Dict[str, Any]]:
        return self.request('listZones', {'keyword': keyword}).get('zone', [])

    @api_call
    def register_template(self, name: str, display_text: str, format: str, hypervisor: str,
                          ostype_id: str, url: str, zone_id: str, is_public: bool = True,
                          password_enabled: bool = False) -> List[Dict[str, Any]]:
        params = {
            'name': name,
            'displaytext': display_text,
            'format': format,
            'hypervisor': hypervisor,
            'ostypeid': ostype_id,
            'url': url,
            'zoneid': zone_id,
            'ispublic': is_public,
            'passwordenabled': password_enabled,
        }
        return self.request('registerTemplate', params).get('template', [])

    @api_call
    def delete_template(self, template_id: str) -> Dict[str, Any]:
        return self.request('deleteTemplate', {'id': template_id})

    @api_call
    def list_templates(self, template_filter: str = 'all', keyword: Optional[str] = None,
                       template_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'templatefilter': template_filter, 'keyword': keyword, 'id': template_id}
        return self.request('listTemplates', params).get('template', [])


def create_client(settings: MainSettings) -> CloudStackClient:
    """Create a client from the [main] settings, resolving secret references."""
    client = CloudStackClient(
        endpoint=settings.endpoint,
        apikey=settings.apikey,
        secretkey=retrieve_secret(settings.secretkey),
        username=settings.username,
        password=retrieve_secret(settings.password),
        verify_ssl=settings.verifyssl,
        ca_file=settings.cafile,
    )
    logging.debug(f"Created API client for {settings.endpoint} "
                  f"({'api keys' if client.uses_api_keys else 'session login'})")
    return client
