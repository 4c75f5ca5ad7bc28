import json

import pytest
import requests
import responses
from responses import matchers

from crm_imobiliario.database_rest import DatabaseRestClient
from crm_imobiliario.errors import DatabaseRestError

from conftest import DB_URL


@pytest.fixture
def db():
    client = DatabaseRestClient(base_url=DB_URL, api_key='chave', timeout=1000)
    yield client
    client.close()


@responses.activate
def test_execute_sql(db):
    responses.post(
        f'{DB_URL}/sql',
        json={'rows': [{'id': 1}], 'rowCount': 1, 'command': 'SELECT'},
        match=[matchers.json_params_matcher({'sql': 'SELECT id FROM clientes WHERE id = $1', 'params': [1]})],
    )

    result = db.execute_sql('SELECT id FROM clientes WHERE id = $1', [1])

    assert result.rows == [{'id': 1}]
    assert result.row_count == 1
    assert result.command == 'SELECT'
    assert responses.calls[0].request.headers['Authorization'] == 'Bearer chave'


@responses.activate
def test_execute_sql_sem_corpo(db):
    responses.post(f'{DB_URL}/sql', body='')

    result = db.execute_sql('VACUUM')

    assert result.rows == []
    assert result.command == 'UNKNOWN'


@responses.activate
def test_select_com_filtros(db):
    responses.get(
        f'{DB_URL}/clientes',
        json=[{'id': 2, 'full_name': 'Ana'}],
        match=[matchers.query_param_matcher({
            'select': 'id,full_name', 'status': 'eq.Venda', 'order': 'created_at.desc', 'limit': '10',
        })],
    )

    rows = db.select('clientes', ['id', 'full_name'], where={'status': 'Venda'},
                     order_by='created_at.desc', limit=10)

    assert rows == [{'id': 2, 'full_name': 'Ana'}]


@responses.activate
def test_insert_update_delete(db):
    responses.post(f'{DB_URL}/clientes', json=[{'id': 3}], status=201)
    responses.patch(
        f'{DB_URL}/clientes', json=[{'id': 3, 'status': 'Visita'}],
        match=[matchers.query_param_matcher({'id': 'eq.3'})],
    )
    responses.delete(f'{DB_URL}/clientes', body='', match=[matchers.query_param_matcher({'id': 'eq.3'})])

    assert db.insert('clientes', {'full_name': 'Bia'}) == [{'id': 3}]
    assert responses.calls[0].request.headers['Prefer'] == 'return=representation'
    assert json.loads(responses.calls[0].request.body) == {'full_name': 'Bia'}
    assert db.update('clientes', {'status': 'Visita'}, where={'id': 3}) == [{'id': 3, 'status': 'Visita'}]
    assert db.delete('clientes', where={'id': 3}) == []


@responses.activate
def test_erro_http_usa_mensagem_do_proxy(db):
    responses.post(f'{DB_URL}/sql', status=400, json={'error': 'syntax error at or near "SELEC"'})

    with pytest.raises(DatabaseRestError) as excinfo:
        db.execute_sql('SELEC 1')

    assert excinfo.value.status_code == 400
    assert str(excinfo.value) == 'syntax error at or near "SELEC"'


@responses.activate
def test_erro_de_conexao(db):
    responses.get(f'{DB_URL}/clientes', body=requests.exceptions.ConnectionError('recusada'))

    with pytest.raises(DatabaseRestError, match='Erro de conexão'):
        db.select('clientes')


@responses.activate
def test_health_check(db):
    responses.get('http://db.test/health', json={'status': 'ok'})

    assert db.test_connection() is True


@responses.activate
def test_health_check_falho_nao_levanta(db):
    responses.get('http://db.test/health', status=503)

    assert db.test_connection() is False
