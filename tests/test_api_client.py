import pytest
import requests
import responses
from responses import matchers

from crm_imobiliario.api_client import ON_401_RETURN_NULL, build_query_url
from crm_imobiliario.errors import ApiRequestError
from crm_imobiliario.schemas import Cliente

from conftest import BASE_URL

CLIENTE = {
    'id': 7,
    'fullName': 'Maria Souza',
    'phone': '11987654321',
    'email': 'maria@exemplo.com',
    'status': 'Em Atendimento',
    'assignedTo': 2,
    'createdAt': '2026-10-01T12:00:00.000Z',
}


def test_build_query_url():
    assert build_query_url(('/api/clientes',)) == ('/api/clientes', {})
    assert build_query_url(('/api/reports/sales', 'month')) == ('/api/reports/sales', {'period': 'month'})
    assert build_query_url(('/api/dashboard/metrics', {'period': 'year', 'userId': None})) == (
        '/api/dashboard/metrics', {'period': 'year'}
    )


@responses.activate
def test_query_envia_token_e_parametros(api):
    responses.get(
        f'{BASE_URL}/api/dashboard/metrics',
        json={'newClientes': 3},
        match=[
            matchers.query_param_matcher({'period': 'month', 'userId': '2'}),
            matchers.header_matcher({'Authorization': 'Bearer token-teste'}),
        ],
    )

    assert api.get_dashboard_metrics('month', 2) == {'newClientes': 3}
    assert 'Content-Type' not in responses.calls[0].request.headers


@responses.activate
def test_query_401_retorna_none_quando_configurado(api):
    responses.get(f'{BASE_URL}/api/user', status=401, body='Unauthorized')

    assert api.query(('/api/user',), on_401=ON_401_RETURN_NULL) is None
    with pytest.raises(ApiRequestError) as exc:
        api.query(('/api/user',))
    assert exc.value.status_code == 401
    assert str(exc.value) == '401: Unauthorized'


@responses.activate
def test_erro_sem_corpo_usa_reason(api):
    responses.get(f'{BASE_URL}/api/clientes/99', status=404, body='')

    with pytest.raises(ApiRequestError) as exc:
        api.get_cliente(99)
    assert str(exc.value) == '404: Not Found'


@responses.activate
def test_erro_de_conexao(api):
    responses.get(f'{BASE_URL}/api/users', body=requests.exceptions.ConnectionError('recusada'))

    with pytest.raises(ApiRequestError):
        api.get_users()


@responses.activate
def test_get_clientes_converte_para_modelo(api):
    responses.get(
        f'{BASE_URL}/api/clientes',
        json={'data': [CLIENTE], 'total': 1},
        match=[matchers.query_param_matcher({'status': 'Em Atendimento'})],
    )

    clientes = api.get_clientes(status='Em Atendimento', search='')

    assert len(clientes) == 1
    assert isinstance(clientes[0], Cliente)
    assert clientes[0].full_name == 'Maria Souza'
    assert clientes[0].assigned_to == 2


@responses.activate
def test_mutacao_envia_json(api):
    responses.patch(
        f'{BASE_URL}/api/clientes/7',
        json=dict(CLIENTE, status='Venda'),
        match=[matchers.json_params_matcher({'status': 'Venda'})],
    )

    data = api.update_cliente(7, {'status': 'Venda'})

    assert data['status'] == 'Venda'
    assert responses.calls[0].request.headers['Content-Type'] == 'application/json'


@responses.activate
def test_resposta_nao_json_devolve_response(api):
    responses.delete(f'{BASE_URL}/api/sales/3', status=204)

    response = api.delete_sale(3)

    assert response.status_code == 204


@responses.activate
def test_appointments_filtra_por_cliente(api):
    responses.get(
        f'{BASE_URL}/api/appointments',
        json=[{
            'id': 1, 'clienteId': 7, 'userId': 2, 'type': 'Visita', 'status': 'Agendado',
            'scheduledAt': '2026-10-20T14:00:00.000Z',
        }],
        match=[matchers.query_param_matcher({'clienteId': '7'})],
    )

    appointments = api.get_appointments(cliente_id=7)

    assert appointments[0].cliente_id == 7
    assert appointments[0].scheduled_at.hour == 14


@responses.activate
def test_test_connection(api):
    responses.get(f'{BASE_URL}/api/health', json={'status': 'ok'})
    assert api.test_connection() is True

    responses.replace(responses.GET, f'{BASE_URL}/api/health', status=503)
    assert api.test_connection() is False
