"""
Fixtures compartilhadas dos testes
"""
from typing import Any, Dict, List, Tuple

import pytest

from crm_imobiliario.api_client import CRMApiClient
from crm_imobiliario.errors import ApiRequestError
from crm_imobiliario.notifications import Notifier
from crm_imobiliario.query_cache import QueryCache

BASE_URL = 'http://crm.test'
DB_URL = 'http://db.test/api/db'


class ManualTimer:
    """Timer controlado pelo teste: fire() executa uma consulta"""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancel_count = 0

    def start(self):
        self.started = True

    def cancel(self):
        self.cancel_count += 1

    def fire(self):
        self.callback()


class TimerFactory:
    def __init__(self):
        self.timers: List[ManualTimer] = []

    def __call__(self, interval, callback):
        timer = ManualTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> ManualTimer:
        return self.timers[-1]


class FakeApi(CRMApiClient):
    """
    API com respostas programadas por rota

    on('GET', '/rota', r1, r2) devolve r1 e depois r2 (o último se repete).
    Exceções programadas são levantadas.
    """

    def __init__(self):
        super().__init__(base_url=BASE_URL, access_token='token-teste', timeout=1000)
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.calls: List[Tuple[str, str, Any, Any]] = []

    def on(self, method: str, path: str, *results):
        self.routes[(method, path)] = list(results)

    def request(self, method, url, body=None, headers=None, params=None, timeout=None):
        self.calls.append((method, url, body, params))
        results = self.routes.get((method, url))
        if not results:
            raise ApiRequestError(f"404: rota não programada {method} {url}", status_code=404)
        result = results.pop(0) if len(results) > 1 else results[0]
        if isinstance(result, Exception):
            raise result
        return result

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call[0] == method and call[1] == path)


@pytest.fixture
def api():
    client = CRMApiClient(base_url=BASE_URL, access_token='token-teste', timeout=1000)
    yield client
    client.close()


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def cache():
    return QueryCache()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def timers():
    return TimerFactory()
