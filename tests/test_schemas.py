from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from crm_imobiliario.schemas import (
    AppointmentCreate, ClienteNoteCreate, SaleCreate, User, VisitCreate
)


def test_agendamento_com_valores_padrao():
    payload = AppointmentCreate(clienteId=7, scheduledAt='2026-10-20T11:00:00.000Z').to_payload()

    assert payload == {
        'clienteId': 7,
        'type': 'Visita',
        'status': 'Agendado',
        'scheduledAt': '2026-10-20T11:00:00.000Z',
    }


def test_agendamento_aceita_datetime():
    appointment = AppointmentCreate(scheduled_at=datetime(2026, 10, 20, 11, 0, tzinfo=timezone.utc))

    assert appointment.to_payload()['scheduledAt'].startswith('2026-10-20T11:00:00')


@pytest.mark.parametrize('campos', [
    {'scheduled_at': 'amanhã cedo'},
    {'scheduled_at': '2026-10-20T11:00:00Z', 'type': 'Almoço'},
    {'scheduled_at': '2026-10-20T11:00:00Z', 'status': 'Esquecido'},
])
def test_agendamento_invalido(campos):
    with pytest.raises(ValidationError):
        AppointmentCreate(**campos)


def test_visita_fora_da_faixa_de_temperatura():
    with pytest.raises(ValidationError):
        VisitCreate(property_id='visita-1', visited_at='2026-10-18T15:00:00.000Z', temperature=6)


def test_venda_envia_decimais_como_texto():
    payload = SaleCreate(
        value=Decimal('350000.00'),
        sold_at='2026-10-17T00:00:00.000Z',
        commission=Decimal('10500.00'),
        total_commission='R$ 10.500,00',
    ).to_payload()

    assert payload['value'] == '350000.00'
    assert payload['commission'] == '10500.00'
    assert payload['totalCommission'] == 'R$ 10.500,00'
    assert 'bonus' not in payload


def test_anotacao_exige_texto_e_usuario():
    with pytest.raises(ValidationError):
        ClienteNoteCreate(cliente_id=7, user_id=None, text='Ligar amanhã')
    with pytest.raises(ValidationError):
        ClienteNoteCreate(cliente_id=7, user_id=3, text='')


def test_papeis_do_usuario():
    corretor = User(id=2, username='bia', full_name='Bia', role='Corretor Trainee', department='Vendas')
    consultor = User(id=1, username='ana', full_name='Ana', role='Consultor de Atendimento',
                     department='Central de Atendimento')

    assert corretor.is_broker and not corretor.is_consultant
    assert consultor.is_consultant and not consultor.is_broker
