from datetime import datetime

import pytest

from crm_imobiliario.dashboard import (
    PerformanceRow, build_report, compute_metrics, get_date_range_from_period,
    monthly_conversion_rates, pct, rank_performance
)
from crm_imobiliario.schemas import Sale

AGORA = datetime(2026, 10, 17, 15, 30)

USERS = [
    {'id': 1, 'username': 'ana', 'fullName': 'Ana Lima', 'role': 'Corretor Senior', 'department': 'Vendas'},
    {'id': 2, 'username': 'bruno', 'fullName': 'Bruno Reis', 'role': 'Corretor Junior', 'department': 'Vendas'},
    {'id': 3, 'username': 'carla', 'fullName': 'Carla Dias', 'role': 'Marketing', 'department': 'Marketing'},
]

CLIENTES = [
    {'id': 1, 'status': 'Agendamento', 'assignedTo': 1, 'createdAt': '2026-10-02T10:00:00.000Z'},
    {'id': 2, 'status': 'Venda', 'assignedTo': 1, 'createdAt': '2026-10-10T10:00:00.000Z'},
    {'id': 3, 'status': 'Sem Atendimento', 'assignedTo': 2, 'createdAt': '2026-10-16T10:00:00.000Z'},
    {'id': 4, 'status': 'Sem Atendimento', 'assignedTo': 2, 'createdAt': '2026-09-20T10:00:00.000Z'},
    {'id': 5, 'status': 'Sem Atendimento', 'assignedTo': 2, 'createdAt': None},
]

APPOINTMENTS = [
    {'id': 1, 'userId': 1, 'status': 'Agendado', 'createdAt': '2026-10-03T10:00:00.000Z'},
    {'id': 2, 'userId': 1, 'status': 'Concluído', 'createdAt': '2026-10-03T15:00:00.000Z'},
    {'id': 3, 'userId': 2, 'status': 'Agendado', 'createdAt': '2026-09-21T10:00:00.000Z'},
]

VISITS = [
    {'id': 1, 'userId': 1, 'propertyId': 'visita-1', 'createdAt': '2026-10-05T10:00:00.000Z'},
]

SALES = [
    {'id': 1, 'userId': 1, 'value': '350000.00', 'createdAt': '2026-10-11T10:00:00.000Z'},
    {'id': 2, 'userId': 2, 'value': '150000.50', 'createdAt': '2026-09-25T10:00:00.000Z'},
]


@pytest.mark.parametrize('period, inicio, fim', [
    ('today', datetime(2026, 10, 17), datetime(2026, 10, 17, 23, 59, 59, 999999)),
    ('yesterday', datetime(2026, 10, 16), datetime(2026, 10, 16, 23, 59, 59, 999999)),
    ('7days', datetime(2026, 10, 10), datetime(2026, 10, 17, 23, 59, 59, 999999)),
    ('week', datetime(2026, 10, 11), datetime(2026, 10, 17, 23, 59, 59, 999999)),
    ('month', datetime(2026, 10, 1), datetime(2026, 10, 31, 23, 59, 59, 999999)),
    ('last_month', datetime(2026, 9, 1), datetime(2026, 9, 30, 23, 59, 59, 999999)),
    ('quarter', datetime(2026, 10, 1), datetime(2026, 12, 31, 23, 59, 59, 999999)),
    ('semester', datetime(2026, 7, 1), datetime(2026, 12, 31, 23, 59, 59, 999999)),
    ('year', datetime(2026, 1, 1), datetime(2026, 12, 31, 23, 59, 59, 999999)),
    ('lastYear', datetime(2025, 1, 1), datetime(2025, 12, 31, 23, 59, 59, 999999)),
    ('desconhecido', datetime(2026, 10, 10), datetime(2026, 10, 17, 23, 59, 59, 999999)),
])
def test_get_date_range_from_period(period, inicio, fim):
    assert get_date_range_from_period(period, AGORA) == (inicio, fim)


def test_last_month_em_janeiro():
    inicio, fim = get_date_range_from_period('lastMonth', datetime(2026, 1, 15))
    assert inicio == datetime(2025, 12, 1)
    assert fim.day == 31 and fim.month == 12


def test_pct():
    assert pct(1, 3) == 33
    assert pct(1, 2) == 50
    assert pct(5, 0) == 0
    assert pct(1, 8) == 13


def test_compute_metrics_do_mes():
    metrics = compute_metrics(CLIENTES, APPOINTMENTS, VISITS, SALES, 'month', AGORA)

    assert metrics.new_clientes == 3
    assert metrics.appointments == 2
    assert metrics.visits == 1
    assert metrics.sales == 1
    assert metrics.conversion_rates.appointments_to_clientes == 67
    assert metrics.conversion_rates.visits_to_appointments == 50
    assert metrics.conversion_rates.sales_to_visits == 100
    assert metrics.team_averages.new_clientes == 1
    assert metrics.team_averages.visits == 1
    assert metrics.performance == [0] * 7


def test_compute_metrics_do_ano_conta_tudo():
    metrics = compute_metrics(CLIENTES, APPOINTMENTS, VISITS, SALES, 'year', AGORA)

    assert metrics.new_clientes == 5
    assert metrics.appointments == 3
    assert metrics.team_averages.new_clientes == 2


def test_compute_metrics_sem_dados():
    metrics = compute_metrics([], [], [], [], 'today', AGORA)

    assert metrics.new_clientes == 0
    assert metrics.conversion_rates.appointments_to_clientes == 0
    assert metrics.team_averages.sales == 1


def test_monthly_conversion_rates():
    taxas = monthly_conversion_rates(CLIENTES, APPOINTMENTS, VISITS, SALES, AGORA)

    assert len(taxas.appointments_to_clientes) == 12
    assert taxas.appointments_to_clientes[8] == 100
    assert taxas.appointments_to_clientes[9] == 67
    assert taxas.sales_to_visits[9] == 100
    assert taxas.visits_to_appointments[8] == 0
    assert taxas.appointments_to_clientes[10:] == [0, 0]


def test_relatorio_de_clientes():
    report = build_report('clientes', clientes=CLIENTES, period='month', now=AGORA)

    assert report == {'total': 3, 'byStatus': {'Agendamento': 1, 'Venda': 1, 'Sem Atendimento': 1}}


def test_relatorio_de_agendamentos():
    report = build_report('appointments', appointments=APPOINTMENTS, users=USERS, period='month', now=AGORA)

    assert report['total'] == 2
    assert report['byStatus'] == {'Agendado': 1, 'Concluído': 1}
    assert report['byUser'] == {1: {'fullName': 'Ana Lima', 'role': 'Corretor Senior', 'count': 2}}
    assert report['byDay'] == {'2026-10-03': 2}


def test_relatorio_de_visitas():
    report = build_report('visits', visits=VISITS, users=USERS, period='month', now=AGORA)

    assert report['byProperty'] == {'visita-1': 1}
    assert report['byDay'] == {'2026-10-05': 1}


def test_relatorio_de_vendas_com_modelos():
    sales = [Sale.model_validate(dict(item, soldAt=item['createdAt'])) for item in SALES]

    report = build_report('sales', sales=sales, users=USERS, period='year', now=AGORA)

    assert report['total'] == 2
    assert report['totalValue'] == pytest.approx(500000.50)
    assert report['byUser'][2]['value'] == pytest.approx(150000.50)
    assert report['byMonth']['2026-09'] == {'count': 1, 'value': pytest.approx(150000.50)}


def test_relatorio_de_producao():
    report = build_report(
        'production', clientes=CLIENTES, appointments=APPOINTMENTS, visits=VISITS,
        sales=SALES, users=USERS, period='month', now=AGORA,
    )

    assert report['totalLeads'] == 3
    assert report['totalSales'] == 1
    assert set(report['byUser']) == {1, 2}
    ana = report['byUser'][1]
    assert (ana['leads'], ana['appointments'], ana['visits'], ana['sales']) == (2, 2, 1, 1)
    assert ana['conversionRates'] == {'appointmentsToLeads': 100, 'visitsToAppointments': 50, 'salesToVisits': 100}
    assert report['byUser'][2]['conversionRates']['appointmentsToLeads'] == 0


def test_relatorio_invalido():
    with pytest.raises(ValueError):
        build_report('financeiro')


def test_ranking_por_vendas():
    rows = [
        PerformanceRow.from_api({'id': 1, 'fullName': 'Ana', 'leads': 10, 'appointments': 5, 'visits': 4, 'sales': 1}),
        PerformanceRow.from_api({'id': 2, 'fullName': 'Bruno', 'leads': 8, 'appointments': 6, 'visits': 3, 'sales': 3}),
    ]

    ranking = rank_performance(rows)

    assert [row.full_name for row in ranking] == ['Bruno', 'Ana']
    assert ranking[0].sales_rate == 100
    assert ranking[1].appointments_rate == 50
    assert [row.id for row in rank_performance(rows, 'leads')] == [1, 2]
    with pytest.raises(ValueError):
        rank_performance(rows, 'salario')
