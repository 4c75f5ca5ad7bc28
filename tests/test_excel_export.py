import os

import pandas as pd
import pytest

from crm_imobiliario.excel_export import ReportExcelExporter

PRODUCAO = {
    'totalLeads': 3,
    'totalAppointments': 2,
    'totalVisits': 1,
    'totalSales': 1,
    'byUser': {
        1: {
            'userId': 1, 'fullName': 'Ana Lima', 'role': 'Corretor Senior',
            'leads': 2, 'appointments': 2, 'visits': 1, 'sales': 1,
            'conversionRates': {'appointmentsToLeads': 100, 'visitsToAppointments': 50, 'salesToVisits': 100},
        },
    },
}


@pytest.fixture
def exporter(tmp_path):
    return ReportExcelExporter(output_folder=str(tmp_path / 'relatorios'))


def test_cria_pasta_de_saida(tmp_path):
    pasta = tmp_path / 'nova'

    ReportExcelExporter(output_folder=str(pasta))

    assert pasta.is_dir()


def test_exporta_relatorio_de_clientes(exporter):
    report = {'total': 3, 'byStatus': {'Agendamento': 1, 'Venda': 2}}

    filepath = exporter.export_report('clientes', report, filename='clientes', period='month')

    assert filepath.endswith('clientes.xlsx')
    assert os.path.exists(filepath)

    summary = exporter.get_export_summary(filepath)
    assert summary['arquivo'] == 'clientes.xlsx'
    assert summary['abas'] == ['Resumo', 'Por Status']
    assert summary['indicadores']['Relatório'] == 'Clientes'
    assert summary['indicadores']['Período'] == 'Mês'
    assert summary['indicadores']['Total'] == 3
    assert summary['tamanho_bytes'] > 0

    status = pd.read_excel(filepath, sheet_name='Por Status')
    assert list(status.columns) == ['Status', 'Quantidade']
    assert status['Quantidade'].sum() == 3


def test_exporta_producao_com_colunas_traduzidas(exporter):
    filepath = exporter.export_report('production', PRODUCAO)

    assert os.path.basename(filepath).startswith('relatorio_production_')
    usuarios = pd.read_excel(filepath, sheet_name='Por Usuário')
    assert 'userId' not in usuarios.columns
    assert list(usuarios.columns[:3]) == ['ID Usuário', 'Nome', 'Cargo']
    assert usuarios.loc[0, 'Leads > Agendamentos (%)'] == 100
    assert usuarios.loc[0, 'Agendamentos > Visitas (%)'] == 50


def test_agrupamento_vazio_gera_aba_com_cabecalho(exporter):
    filepath = exporter.export_report('visits', {'total': 0, 'byUser': {}, 'byDay': {}, 'byProperty': {}})

    dias = pd.read_excel(filepath, sheet_name='Por Dia')
    assert list(dias.columns) == ['Dia', 'Quantidade']
    assert dias.empty


def test_relatorio_invalido_ou_vazio(exporter):
    with pytest.raises(ValueError):
        exporter.export_report('financeiro', {'total': 1})
    with pytest.raises(ValueError):
        exporter.export_report('clientes', {})


def test_resumo_de_arquivo_inexistente(exporter, tmp_path):
    assert exporter.get_export_summary(str(tmp_path / 'nada.xlsx')) == {'error': 'Arquivo não encontrado'}
