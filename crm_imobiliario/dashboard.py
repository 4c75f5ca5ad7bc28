"""
Métricas do dashboard e relatórios gerenciais

Os cálculos partem das listas de clientes, agendamentos, visitas e vendas
(dicts da API em camelCase ou modelos do pacote). Datas são comparadas em UTC.
"""
import calendar
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from pydantic import BaseModel
from pydantic.alias_generators import to_snake

from crm_imobiliario.schemas import UserDepartment
from crm_imobiliario.stores import (
    REPORTS, ConversionRates, DashboardMetrics, MonthlyConversionRates, TeamAverages
)

logger = logging.getLogger(__name__)

# Tamanho da equipe usado na média por consultor
TEAM_SIZE = 3


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _start_of_day(dia: datetime) -> datetime:
    return dia.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(dia: datetime) -> datetime:
    return dia.replace(hour=23, minute=59, second=59, microsecond=999999)


def _end_of_month(ano: int, mes: int) -> datetime:
    ultimo_dia = calendar.monthrange(ano, mes)[1]
    return datetime(ano, mes, ultimo_dia, 23, 59, 59, 999999)


def get_date_range_from_period(period: Optional[str], now: datetime = None) -> Tuple[datetime, datetime]:
    """
    Intervalo (início, fim) coberto por um período do filtro

    Períodos desconhecidos caem nos últimos 7 dias.
    """
    if now is None:
        now = _utc_now()
    fim = _end_of_day(now)

    if period == 'today':
        inicio = _start_of_day(now)
    elif period == 'yesterday':
        ontem = now - timedelta(days=1)
        inicio, fim = _start_of_day(ontem), _end_of_day(ontem)
    elif period == 'week':
        # Semana começando no domingo
        dias_desde_domingo = (now.weekday() + 1) % 7
        inicio = _start_of_day(now - timedelta(days=dias_desde_domingo))
    elif period == 'month':
        inicio = datetime(now.year, now.month, 1)
        fim = _end_of_month(now.year, now.month)
    elif period in ('last_month', 'lastMonth'):
        ano, mes = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
        inicio = datetime(ano, mes, 1)
        fim = _end_of_month(ano, mes)
    elif period == 'quarter':
        primeiro_mes = 3 * ((now.month - 1) // 3) + 1
        inicio = datetime(now.year, primeiro_mes, 1)
        fim = _end_of_month(now.year, primeiro_mes + 2)
    elif period in ('semester', 'half'):
        if now.month <= 6:
            inicio, fim = datetime(now.year, 1, 1), _end_of_month(now.year, 6)
        else:
            inicio, fim = datetime(now.year, 7, 1), _end_of_month(now.year, 12)
    elif period == 'year':
        inicio, fim = datetime(now.year, 1, 1), _end_of_month(now.year, 12)
    elif period == 'lastYear':
        inicio, fim = datetime(now.year - 1, 1, 1), _end_of_month(now.year - 1, 12)
    else:
        inicio = _start_of_day(now - timedelta(days=7))

    return inicio, fim


def _round_half_up(valor: float) -> int:
    return int(math.floor(valor + 0.5))


def pct(part: float, whole: float) -> int:
    """Percentual inteiro de part sobre whole; 0 quando whole é 0"""
    if not whole:
        return 0
    return _round_half_up(part / whole * 100)


# ========== DATAFRAMES ==========

def _as_dict(item: Any) -> Dict[str, Any]:
    if isinstance(item, BaseModel):
        return item.model_dump(mode='json')
    return {to_snake(chave): valor for chave, valor in dict(item).items()}


def _frame(items: Optional[Iterable[Any]], columns: List[str]) -> pd.DataFrame:
    """DataFrame em snake_case com as colunas pedidas sempre presentes"""
    df = pd.DataFrame([_as_dict(item) for item in items or []])
    for coluna in columns:
        if coluna not in df.columns:
            df[coluna] = None
    df['created_at'] = pd.to_datetime(df['created_at'], utc=True, errors='coerce', format='ISO8601')
    df['created_at'] = df['created_at'].dt.tz_localize(None)
    return df


def _in_range(df: pd.DataFrame, inicio: datetime, fim: datetime) -> pd.DataFrame:
    # Registros sem data de criação ficam de fora (NaT nunca entra no intervalo)
    return df[(df['created_at'] >= inicio) & (df['created_at'] <= fim)]


def _frames(clientes, appointments, visits, sales) -> Dict[str, pd.DataFrame]:
    return {
        'clientes': _frame(clientes, ['created_at', 'status', 'assigned_to']),
        'appointments': _frame(appointments, ['created_at', 'status', 'user_id']),
        'visits': _frame(visits, ['created_at', 'user_id', 'property_id']),
        'sales': _frame(sales, ['created_at', 'user_id', 'value']),
    }


# ========== MÉTRICAS ==========

def compute_metrics(clientes: List[Any], appointments: List[Any], visits: List[Any],
                    sales: List[Any], period: str = 'month', now: datetime = None) -> DashboardMetrics:
    """
    Métricas do dashboard para o período

    Com period='year' todos os registros entram na contagem.
    """
    frames = _frames(clientes, appointments, visits, sales)
    if period != 'year':
        inicio, fim = get_date_range_from_period(period, now)
        frames = {nome: _in_range(df, inicio, fim) for nome, df in frames.items()}

    total_clientes = len(frames['clientes'])
    total_appointments = len(frames['appointments'])
    total_visits = len(frames['visits'])
    total_sales = len(frames['sales'])

    logger.debug(
        f"Métricas ({period}): {total_clientes} clientes, {total_appointments} agendamentos, "
        f"{total_visits} visitas, {total_sales} vendas"
    )

    return DashboardMetrics(
        new_clientes=total_clientes,
        appointments=total_appointments,
        visits=total_visits,
        sales=total_sales,
        conversion_rates=ConversionRates(
            appointments_to_clientes=pct(total_appointments, total_clientes),
            visits_to_appointments=pct(total_visits, total_appointments),
            sales_to_visits=pct(total_sales, total_visits),
        ),
        team_averages=TeamAverages(
            new_clientes=max(1, _round_half_up(total_clientes / TEAM_SIZE)),
            appointments=max(1, _round_half_up(total_appointments / TEAM_SIZE)),
            visits=max(1, _round_half_up(total_visits / TEAM_SIZE)),
            sales=max(1, _round_half_up(total_sales / TEAM_SIZE)),
        ),
    )


def monthly_conversion_rates(clientes: List[Any], appointments: List[Any], visits: List[Any],
                             sales: List[Any], now: datetime = None) -> MonthlyConversionRates:
    """Taxas de conversão mês a mês no ano corrente; meses futuros ficam em 0"""
    if now is None:
        now = _utc_now()
    frames = _frames(clientes, appointments, visits, sales)
    taxas = MonthlyConversionRates()

    for mes in range(1, now.month + 1):
        inicio = datetime(now.year, mes, 1)
        fim = _end_of_month(now.year, mes)
        no_mes = {nome: len(_in_range(df, inicio, fim)) for nome, df in frames.items()}

        taxas.appointments_to_clientes[mes - 1] = pct(no_mes['appointments'], no_mes['clientes'])
        taxas.visits_to_appointments[mes - 1] = pct(no_mes['visits'], no_mes['appointments'])
        taxas.sales_to_visits[mes - 1] = pct(no_mes['sales'], no_mes['visits'])

    return taxas


# ========== RELATÓRIOS ==========

def _users_by_id(users: Optional[List[Any]]) -> Dict[int, Dict[str, Any]]:
    return {usuario['id']: usuario for usuario in (_as_dict(u) for u in users or [])}


def _plain(chave: Any) -> Any:
    """Converte escalares do numpy; ids que viraram float voltam a ser int"""
    if hasattr(chave, 'item'):
        chave = chave.item()
    if isinstance(chave, float) and chave.is_integer():
        return int(chave)
    return chave


def _count_by(df: pd.DataFrame, coluna: str) -> Dict[Any, int]:
    contagem = df[coluna].dropna().value_counts()
    return {_plain(chave): int(total) for chave, total in contagem.items()}


def _count_by_day(df: pd.DataFrame) -> Dict[str, int]:
    dias = df['created_at'].dropna().dt.strftime('%Y-%m-%d')
    return {dia: int(total) for dia, total in dias.value_counts().sort_index().items()}


def _count_by_user(df: pd.DataFrame, usuarios: Dict[int, Dict[str, Any]]) -> Dict[int, Dict[str, Any]]:
    resultado = {}
    for user_id, total in _count_by(df, 'user_id').items():
        usuario = usuarios.get(int(user_id), {})
        resultado[int(user_id)] = {
            'fullName': usuario.get('full_name', 'Desconhecido'),
            'role': usuario.get('role', ''),
            'count': total,
        }
    return resultado


def _sale_values(df: pd.DataFrame) -> pd.Series:
    return pd.to_numeric(df['value'].astype(str), errors='coerce').fillna(0.0)


def clientes_report(frames: Dict[str, pd.DataFrame], **kwargs) -> Dict[str, Any]:
    df = frames['clientes']
    return {'total': len(df), 'byStatus': _count_by(df, 'status')}


def appointments_report(frames: Dict[str, pd.DataFrame], users=None, **kwargs) -> Dict[str, Any]:
    df = frames['appointments']
    return {
        'total': len(df),
        'byStatus': _count_by(df, 'status'),
        'byUser': _count_by_user(df, _users_by_id(users)),
        'byDay': _count_by_day(df),
    }


def visits_report(frames: Dict[str, pd.DataFrame], users=None, **kwargs) -> Dict[str, Any]:
    df = frames['visits'].copy()
    df['property_id'] = df['property_id'].fillna('Sem imóvel')
    return {
        'total': len(df),
        'byUser': _count_by_user(df, _users_by_id(users)),
        'byDay': _count_by_day(df),
        'byProperty': _count_by(df, 'property_id'),
    }


def sales_report(frames: Dict[str, pd.DataFrame], users=None, **kwargs) -> Dict[str, Any]:
    df = frames['sales'].copy()
    df['value'] = _sale_values(df)
    usuarios = _users_by_id(users)

    by_user = {}
    for user_id, grupo in df.dropna(subset=['user_id']).groupby('user_id'):
        usuario = usuarios.get(int(user_id), {})
        by_user[int(user_id)] = {
            'fullName': usuario.get('full_name', 'Desconhecido'),
            'role': usuario.get('role', ''),
            'count': len(grupo),
            'value': float(grupo['value'].sum()),
        }

    by_month = {}
    com_data = df.dropna(subset=['created_at'])
    for mes, grupo in com_data.groupby(com_data['created_at'].dt.strftime('%Y-%m')):
        by_month[mes] = {'count': len(grupo), 'value': float(grupo['value'].sum())}

    return {
        'total': len(df),
        'totalValue': float(df['value'].sum()),
        'byUser': by_user,
        'byMonth': by_month,
    }


def production_report(frames: Dict[str, pd.DataFrame], users=None, **kwargs) -> Dict[str, Any]:
    """Produção por consultor do departamento de vendas"""
    leads = _count_by(frames['clientes'], 'assigned_to')
    appointments = _count_by(frames['appointments'], 'user_id')
    visits = _count_by(frames['visits'], 'user_id')
    sales = _count_by(frames['sales'], 'user_id')

    by_user = {}
    for user_id, usuario in _users_by_id(users).items():
        if usuario.get('department') != UserDepartment.VENDAS:
            continue
        row = PerformanceRow(
            id=user_id,
            username=usuario.get('username', ''),
            full_name=usuario.get('full_name', ''),
            role=usuario.get('role', ''),
            department=usuario.get('department', ''),
            leads=leads.get(user_id, 0),
            appointments=appointments.get(user_id, 0),
            visits=visits.get(user_id, 0),
            sales=sales.get(user_id, 0),
        )
        by_user[user_id] = {
            'userId': user_id,
            'fullName': row.full_name,
            'role': row.role,
            'leads': row.leads,
            'appointments': row.appointments,
            'visits': row.visits,
            'sales': row.sales,
            'conversionRates': {
                'appointmentsToLeads': row.appointments_rate,
                'visitsToAppointments': row.visits_rate,
                'salesToVisits': row.sales_rate,
            },
        }

    return {
        'totalLeads': len(frames['clientes']),
        'totalAppointments': len(frames['appointments']),
        'totalVisits': len(frames['visits']),
        'totalSales': len(frames['sales']),
        'byUser': by_user,
    }


REPORT_BUILDERS = {
    'clientes': clientes_report,
    'appointments': appointments_report,
    'visits': visits_report,
    'sales': sales_report,
    'production': production_report,
}


def build_report(kind: str, clientes: List[Any] = None, appointments: List[Any] = None,
                 visits: List[Any] = None, sales: List[Any] = None, users: List[Any] = None,
                 period: str = 'month', now: datetime = None) -> Dict[str, Any]:
    """
    Monta um relatório gerencial (clientes, production, appointments, visits, sales)

    Todos os relatórios consideram apenas registros criados dentro do período.
    """
    if kind not in REPORT_BUILDERS:
        raise ValueError(f"Relatório inválido: {kind}. Use um de: {', '.join(REPORTS)}")

    inicio, fim = get_date_range_from_period(period, now)
    frames = {
        nome: _in_range(df, inicio, fim)
        for nome, df in _frames(clientes, appointments, visits, sales).items()
    }

    logger.info(f"Gerando relatório '{REPORTS[kind]}' de {inicio:%d/%m/%Y} a {fim:%d/%m/%Y}")
    return REPORT_BUILDERS[kind](frames, users=users)


# ========== RANKING ==========

@dataclass
class PerformanceRow:
    """Linha da tabela de desempenho de um usuário"""
    id: int
    username: str
    full_name: str
    role: str
    department: str
    leads: int = 0
    appointments: int = 0
    visits: int = 0
    sales: int = 0

    @property
    def appointments_rate(self) -> int:
        return pct(self.appointments, self.leads)

    @property
    def visits_rate(self) -> int:
        return pct(self.visits, self.appointments)

    @property
    def sales_rate(self) -> int:
        return pct(self.sales, self.visits)

    @property
    def conversion(self) -> int:
        return pct(self.sales, self.leads)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'PerformanceRow':
        """Converte um item de /api/users/performance"""
        return cls(
            id=data['id'],
            username=data.get('username', ''),
            full_name=data.get('fullName', ''),
            role=data.get('role', ''),
            department=data.get('department', ''),
            leads=data.get('leads', 0),
            appointments=data.get('appointments', 0),
            visits=data.get('visits', 0),
            sales=data.get('sales', 0),
        )


def rank_performance(rows: List[PerformanceRow], sort_by: str = 'sales',
                     descending: bool = True) -> List[PerformanceRow]:
    """Ordena as linhas de desempenho; o padrão é vendas em ordem decrescente"""
    if not hasattr(PerformanceRow, sort_by) and sort_by not in PerformanceRow.__dataclass_fields__:
        raise ValueError(f"Coluna de ordenação inválida: {sort_by}")
    return sorted(rows, key=lambda row: getattr(row, sort_by), reverse=descending)
