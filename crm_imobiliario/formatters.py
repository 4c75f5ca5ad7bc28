"""
Formatação no padrão brasileiro (moeda, números, datas, telefones)
"""
import re
import unicodedata
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

Number = Union[int, float, Decimal, str, None]


def _to_decimal(valor: Number) -> Optional[Decimal]:
    """Converte número ou string (ex: 'R$ 1.234,56') em Decimal; None se inválido"""
    if valor is None or valor == '':
        return None
    if isinstance(valor, Decimal):
        return valor
    if isinstance(valor, (int, float)):
        return Decimal(str(valor))

    # Mantém só dígitos, vírgula e sinal; vírgula vira ponto decimal
    limpo = re.sub(r'[^\d,-]', '', str(valor)).replace(',', '.', 1)
    try:
        return Decimal(limpo)
    except InvalidOperation:
        return None


def parse_currency(valor: Number) -> Decimal:
    """Valor monetário digitado ('R$ 1.500,00') como Decimal; inválido vira 0"""
    resultado = _to_decimal(valor)
    return resultado if resultado is not None else Decimal('0')


def _pt_br(valor: Decimal, casas: int) -> str:
    texto = f"{valor:,.{casas}f}"
    return texto.replace(',', '_').replace('.', ',').replace('_', '.')


def format_currency(valor: Number) -> str:
    """
    Formata valor como moeda brasileira

    Exemplo: 1234.5 -> 'R$ 1.234,50'. Vazio ou inválido -> 'R$ 0,00'
    """
    numero = _to_decimal(valor)
    if numero is None:
        return 'R$ 0,00'
    if numero < 0:
        return f"-R$ {_pt_br(-numero, 2)}"
    return f"R$ {_pt_br(numero, 2)}"


def format_number(valor: Number) -> str:
    """Número com separador de milhares (1234567 -> '1.234.567')"""
    numero = _to_decimal(valor)
    if numero is None:
        return '0'
    if numero == numero.to_integral_value():
        return _pt_br(numero, 0)
    texto = _pt_br(numero, 3).rstrip('0')
    return texto.rstrip(',')


def _to_datetime(data: Union[str, date, datetime, None]) -> Optional[datetime]:
    if data is None or data == '':
        return None
    if isinstance(data, datetime):
        return data
    if isinstance(data, date):
        return datetime.combine(data, time())
    try:
        return datetime.fromisoformat(str(data).replace('Z', '+00:00'))
    except ValueError:
        return None


def format_date(data: Union[str, date, datetime, None]) -> str:
    """Data no formato dd/mm/aaaa; vazio se inválida"""
    if isinstance(data, str) and re.match(r'^\d{4}-\d{2}-\d{2}', data):
        # Usa só a parte da data para não deslocar o dia pelo fuso
        ano, mes, dia = data[:10].split('-')
        return f"{dia}/{mes}/{ano}"

    convertida = _to_datetime(data)
    if convertida is None:
        return ''
    return convertida.strftime('%d/%m/%Y')


def format_datetime(data: Union[str, datetime, None]) -> str:
    convertida = _to_datetime(data)
    if convertida is None:
        return ''
    return convertida.strftime('%d/%m/%Y %H:%M')


def format_phone_number(valor: str) -> str:
    """
    Aplica máscara de telefone

    Até 10 dígitos: (99) 9999-9999 (fixo)
    Mais de 10: (99) 99999-9999 (celular)
    """
    if not valor:
        return ''

    digitos = re.sub(r'\D', '', valor)
    if len(digitos) <= 10:
        formatado = re.sub(r'(\d{2})(\d)', r'(\1) \2', digitos, count=1)
        return re.sub(r'(\d{4})(\d)', r'\1-\2', formatado, count=1)

    formatado = re.sub(r'(\d{2})(\d)', r'(\1) \2', digitos, count=1)
    formatado = re.sub(r'(\d{5})(\d)', r'\1-\2', formatado, count=1)
    return re.sub(r'(-\d{4})\d+$', r'\1', formatado)


def get_initials(nome: str) -> str:
    """Iniciais do nome ('Maria da Silva' -> 'MS', 'Ana' -> 'AN')"""
    if not nome:
        return ''
    partes = nome.split(' ')
    if len(partes) == 1:
        return partes[0][:2].upper()
    return (partes[0][:1] + partes[-1][:1]).upper()


def normalize_instance_name(full_name: str) -> str:
    """Nome de instância do WhatsApp: primeiro nome sem acentos, minúsculo, [a-z0-9_]"""
    if not full_name:
        return ''
    primeiro_nome = full_name.split(' ')[0]
    sem_acentos = ''.join(
        c for c in unicodedata.normalize('NFD', primeiro_nome)
        if unicodedata.category(c) != 'Mn'
    )
    return re.sub(r'[^a-z0-9_]', '', sem_acentos.lower())


def _plural(quantidade: int, singular: str, plural: str) -> str:
    return f"{quantidade} {singular if quantidade == 1 else plural}"


def format_time_ago(data: Union[str, datetime, None], now: datetime = None) -> str:
    """Tempo relativo em português ('há 5 minutos', 'em 2 dias')"""
    convertida = _to_datetime(data)
    if convertida is None:
        return '' if not data else 'Data inválida'

    if now is None:
        now = datetime.now(timezone.utc) if convertida.tzinfo else datetime.now()
    segundos = (now - convertida).total_seconds()
    futuro = segundos < 0
    segundos = abs(segundos)

    minutos = int(segundos // 60)
    horas = int(segundos // 3600)
    dias = int(segundos // 86400)

    if minutos < 1:
        texto = 'menos de um minuto'
    elif minutos < 60:
        texto = _plural(minutos, 'minuto', 'minutos')
    elif horas < 24:
        texto = f"cerca de {_plural(horas, 'hora', 'horas')}"
    elif dias < 30:
        texto = _plural(dias, 'dia', 'dias')
    elif dias < 365:
        texto = _plural(dias // 30, 'mês', 'meses')
    else:
        texto = _plural(dias // 365, 'ano', 'anos')

    return f"em {texto}" if futuro else f"há {texto}"


def brazil_form_date_to_utc(dia: date, horario: str) -> str:
    """
    Combina data e horário digitados em um timestamp ISO em UTC

    O relógio UTC do resultado é igual ao horário digitado
    (11:00 no formulário -> ...T11:00:00.000Z).
    """
    horas, minutos = (int(parte) for parte in horario.split(':')[:2])
    combinado = datetime(dia.year, dia.month, dia.day, horas, minutos, tzinfo=timezone.utc)
    return combinado.strftime('%Y-%m-%dT%H:%M:%S.000Z')
