"""
Estado de visualização do dashboard e dos relatórios

Cada store guarda os filtros escolhidos (período, usuário, relatório) e
avisa os inscritos a cada alteração.
"""
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Períodos aceitos pelos filtros, com o rótulo exibido
PERIODS: Dict[str, str] = {
    'today': 'Hoje',
    'yesterday': 'Ontem',
    '7days': '7 dias',
    'last_month': 'Mês Passado',
    'month': 'Mês',
    'quarter': 'Trimestre',
    'semester': 'Semestre',
    'year': 'Ano',
}

REPORTS: Dict[str, str] = {
    'clientes': 'Clientes',
    'production': 'Produção',
    'appointments': 'Agendamentos',
    'visits': 'Visitas',
    'sales': 'Vendas',
}


def _zeros(size: int = 7) -> List[int]:
    return [0] * size


@dataclass
class ConversionRates:
    appointments_to_clientes: int = 0
    visits_to_appointments: int = 0
    sales_to_visits: int = 0


@dataclass
class MonthlyConversionRates:
    appointments_to_clientes: List[int] = field(default_factory=lambda: _zeros(12))
    visits_to_appointments: List[int] = field(default_factory=lambda: _zeros(12))
    sales_to_visits: List[int] = field(default_factory=lambda: _zeros(12))


@dataclass
class TeamAverages:
    new_clientes: int = 0
    appointments: int = 0
    visits: int = 0
    sales: int = 0


@dataclass
class DashboardMetrics:
    new_clientes: int = 0
    appointments: int = 0
    visits: int = 0
    sales: int = 0
    conversion_rates: ConversionRates = field(default_factory=ConversionRates)
    team_averages: TeamAverages = field(default_factory=TeamAverages)
    # Desempenho dos últimos 7 dias
    performance: List[int] = field(default_factory=_zeros)
    team_performance: List[int] = field(default_factory=_zeros)
    monthly_conversion_rates: Optional[MonthlyConversionRates] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'DashboardMetrics':
        """Converte o JSON de /api/dashboard/metrics"""
        data = data or {}
        rates = data.get('conversionRates') or {}
        averages = data.get('teamAverages') or {}
        monthly = data.get('monthlyConversionRates')

        return cls(
            new_clientes=data.get('newClientes', 0),
            appointments=data.get('appointments', 0),
            visits=data.get('visits', 0),
            sales=data.get('sales', 0),
            conversion_rates=ConversionRates(
                appointments_to_clientes=rates.get('appointmentsToClientes', 0),
                visits_to_appointments=rates.get('visitsToAppointments', 0),
                sales_to_visits=rates.get('salesToVisits', 0),
            ),
            team_averages=TeamAverages(
                new_clientes=averages.get('newClientes', 0),
                appointments=averages.get('appointments', 0),
                visits=averages.get('visits', 0),
                sales=averages.get('sales', 0),
            ),
            performance=list(data.get('performance') or _zeros()),
            team_performance=list(data.get('teamPerformance') or _zeros()),
            monthly_conversion_rates=MonthlyConversionRates(
                appointments_to_clientes=list(monthly.get('appointmentsToClientes') or _zeros(12)),
                visits_to_appointments=list(monthly.get('visitsToAppointments') or _zeros(12)),
                sales_to_visits=list(monthly.get('salesToVisits') or _zeros(12)),
            ) if monthly else None,
        )


class Store:
    """Base dos stores: estado protegido por lock e lista de inscritos"""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[Callable[[Dict[str, Any]], None]] = []

    def snapshot(self) -> Dict[str, Any]:
        raise NotImplementedError

    def subscribe(self, listener: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes):
        with self._lock:
            for name, value in changes.items():
                setattr(self, name, value)
            listeners = list(self._listeners)
        state = self.snapshot()
        for listener in listeners:
            listener(state)


def _check_period(period: str):
    if period not in PERIODS:
        raise ValueError(f"Período inválido: {period}. Use um de: {', '.join(PERIODS)}")


class DashboardStore(Store):
    def __init__(self):
        super().__init__()
        self.current_period = 'month'
        self.metrics = DashboardMetrics()
        self.is_loading = False
        self.recent_clientes: List[Any] = []
        self.upcoming_appointments: List[Any] = []
        # None = todos os usuários
        self.selected_user_id: Optional[int] = None

    def snapshot(self) -> Dict[str, Any]:
        return {
            'current_period': self.current_period,
            'metrics': replace(self.metrics),
            'is_loading': self.is_loading,
            'recent_clientes': list(self.recent_clientes),
            'upcoming_appointments': list(self.upcoming_appointments),
            'selected_user_id': self.selected_user_id,
        }

    def set_period(self, period: str):
        _check_period(period)
        logger.debug(f"Período do dashboard: {period}")
        self._set(current_period=period)

    def set_metrics(self, metrics: DashboardMetrics):
        self._set(metrics=metrics)

    def set_is_loading(self, is_loading: bool):
        self._set(is_loading=is_loading)

    def set_recent_clientes(self, clientes: List[Any]):
        self._set(recent_clientes=list(clientes))

    def set_upcoming_appointments(self, appointments: List[Any]):
        self._set(upcoming_appointments=list(appointments))

    def set_selected_user(self, user_id: Optional[int]):
        self._set(selected_user_id=user_id)


class ReportsStore(Store):
    def __init__(self):
        super().__init__()
        self.current_report = 'clientes'
        self.current_period = 'today'
        self.is_loading = False
        self.report_data: Any = None

    def snapshot(self) -> Dict[str, Any]:
        return {
            'current_report': self.current_report,
            'current_period': self.current_period,
            'is_loading': self.is_loading,
            'report_data': self.report_data,
        }

    def set_current_report(self, report: str):
        if report not in REPORTS:
            raise ValueError(f"Relatório inválido: {report}. Use um de: {', '.join(REPORTS)}")
        self._set(current_report=report)

    def set_period(self, period: str):
        _check_period(period)
        self._set(current_period=period)

    def set_is_loading(self, is_loading: bool):
        self._set(is_loading=is_loading)

    def set_report_data(self, data: Any):
        self._set(report_data=data)
