"""
Acompanhamento dos processos sequenciais do WhatsApp executados no servidor
(validação de números e busca de fotos de perfil)

O servidor executa o lote; aqui o processo é iniciado, o status é consultado
em intervalo fixo até o fim e o resultado é resumido para o usuário.

Estados: IDLE -> STARTING -> POLLING -> FINISHED | STOPPED | ERROR
"""
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from crm_imobiliario.api_client import CRMApiClient
from crm_imobiliario.config import active_config
from crm_imobiliario.errors import ApiRequestError, JobError
from crm_imobiliario.notifications import Notifier
from crm_imobiliario.query_cache import QueryCache
from crm_imobiliario.whatsapp_client import WhatsAppClient, is_connected_status

logger = logging.getLogger(__name__)

GENERIC_POLL_ERROR = "Erro ao verificar status do processamento"
NOT_CONNECTED_MESSAGE = "A instância do WhatsApp não está conectada."
STILL_DISCONNECTED_MESSAGE = (
    "A instância ainda não está conectada. Verifique se o WhatsApp está aberto no dispositivo."
)


class JobState:
    IDLE = 'idle'
    STARTING = 'starting'
    POLLING = 'polling'
    FINISHED = 'finished'
    STOPPED = 'stopped'
    ERROR = 'error'

    TERMINAL = (FINISHED, STOPPED, ERROR)


@dataclass
class JobStatus:
    is_running: bool = False
    is_finished: bool = False
    processed: int = 0
    total: int = 0
    success_count: int = 0
    failure_count: int = 0
    elapsed_seconds: Optional[int] = None
    percent_complete: int = 0
    estimated_remaining_seconds: Optional[int] = None
    current_item: Optional[str] = None
    recent_results: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    connection_lost: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _elapsed_seconds(start: Optional[str], end: Optional[str], now: datetime = None) -> Optional[int]:
    start_time = _parse_time(start)
    if start_time is None:
        return None
    end_time = _parse_time(end) or now or datetime.now(timezone.utc)
    return max(0, round((end_time - start_time).total_seconds()))


def _mentions_disconnection(message: Optional[str]) -> bool:
    if not message:
        return False
    return 'não está conectada' in message or 'not connected' in message


def _error_body(error: ApiRequestError) -> Dict[str, Any]:
    if not error.body:
        return {}
    try:
        data = json.loads(error.body)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def format_remaining_time(seconds: Optional[float]) -> str:
    """Tempo restante: 'Calculando...', 'Concluído', '2m 5s' ou '45s'"""
    if seconds is None:
        return "Calculando..."
    if seconds <= 0:
        return "Concluído"

    seconds = int(seconds)
    minutes = seconds // 60
    remaining_seconds = seconds % 60
    if minutes > 0:
        return f"{minutes}m {remaining_seconds}s"
    return f"{remaining_seconds}s"


def format_elapsed_time(seconds: Optional[int]) -> str:
    if not seconds:
        return "0s"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


# ========== DEFINIÇÕES DOS PROCESSOS ==========

class JobDefinition:
    """Rotas e interpretação do status de um processo sequencial"""
    name = ''
    label = ''
    base_path = ''

    started_title = "Processo iniciado"
    started_description = ""
    stopped_title = "Processo interrompido"
    stopped_description = ""
    finished_title = "Processo concluído"

    @property
    def start_path(self) -> str:
        return f"{self.base_path}/start"

    @property
    def stop_path(self) -> str:
        return f"{self.base_path}/stop"

    @property
    def status_path(self) -> str:
        return f"{self.base_path}/status"

    def parse_status(self, data: Dict[str, Any]) -> JobStatus:
        raise NotImplementedError

    def parse_start(self, data: Any) -> Optional[JobStatus]:
        """Status devolvido pela rota de início, quando houver"""
        return None

    def parse_stop(self, data: Any) -> Optional[JobStatus]:
        return None

    def start_error(self, error: ApiRequestError) -> JobError:
        body = _error_body(error)
        message = body.get('errorMessage') or body.get('message') or str(error)
        return JobError(message, connection_lost=_mentions_disconnection(message))

    def summary(self, status: JobStatus) -> str:
        raise NotImplementedError


class SequentialValidationJob(JobDefinition):
    """Validação, um a um, de quais clientes têm WhatsApp"""
    name = 'sequential-validation'
    label = 'Validação sequencial'
    base_path = '/api/whatsapp/sequential-validation'

    started_title = "Validação iniciada"
    started_description = "O processo de validação foi iniciado com sucesso."
    stopped_title = "Validação interrompida"
    stopped_description = "O processo de validação foi interrompido com sucesso."
    finished_title = "Validação concluída"

    # Códigos de erro do servidor para instância desconectada
    CONNECTION_ERRORS = ('not_connected', 'no_connected_instance')

    def parse_status(self, data: Dict[str, Any]) -> JobStatus:
        data = data or {}
        # A rota responde {message, status}
        raw = data.get('status') if isinstance(data.get('status'), dict) else data

        is_running = bool(raw.get('isProcessing'))
        completed = raw.get('completedCount') or 0
        error = raw.get('errorMessage')

        return JobStatus(
            is_running=is_running,
            is_finished=not is_running and (completed > 0 or bool(raw.get('endTime'))),
            processed=completed,
            total=raw.get('totalClients') or 0,
            success_count=raw.get('successCount') or 0,
            failure_count=raw.get('failureCount') or 0,
            elapsed_seconds=_elapsed_seconds(raw.get('startTime'), raw.get('endTime')),
            percent_complete=raw.get('percentComplete') or 0,
            estimated_remaining_seconds=raw.get('estimatedTimeRemaining'),
            current_item=raw.get('currentClientName'),
            recent_results=list(raw.get('recentResults') or []),
            error=error,
            connection_lost=_mentions_disconnection(error),
            raw=raw,
        )

    def parse_start(self, data: Any) -> Optional[JobStatus]:
        if isinstance(data, dict) and isinstance(data.get('status'), dict):
            return self.parse_status(data)
        return None

    parse_stop = parse_start

    def start_error(self, error: ApiRequestError) -> JobError:
        body = _error_body(error)
        message = body.get('errorMessage') or ''
        connection_lost = (
            body.get('error') in self.CONNECTION_ERRORS
            or 'não está conectada' in message
            or 'instância' in message
        )
        if connection_lost:
            return JobError(message or NOT_CONNECTED_MESSAGE, connection_lost=True)
        return JobError(message or f"Erro HTTP: {error.status_code or error}")

    def summary(self, status: JobStatus) -> str:
        return (
            f"Validação concluída: {status.processed} de {status.total} clientes verificados "
            f"({status.success_count} com WhatsApp, {status.failure_count} sem WhatsApp) "
            f"em {format_elapsed_time(status.elapsed_seconds)}"
        )


class SequentialProfilePicturesJob(JobDefinition):
    """Busca, um a um, das fotos de perfil do WhatsApp dos clientes"""
    name = 'sequential-profile-pictures'
    label = 'Busca de fotos de perfil'
    base_path = '/api/whatsapp/sequential-profile-pictures'

    started_description = "A busca sequencial de fotos de perfil foi iniciada com sucesso"
    stopped_description = "A busca de fotos de perfil foi interrompida com sucesso"
    finished_title = "Busca de fotos concluída"

    def parse_status(self, data: Dict[str, Any]) -> JobStatus:
        data = data or {}
        is_running = bool(data.get('isRunning'))
        processed = data.get('clientsProcessed') or 0
        total = data.get('clientsTotal') or 0
        updated = data.get('updatedPhotos') or 0
        elapsed = data.get('elapsedTimeInSeconds')
        if elapsed is None:
            elapsed = _elapsed_seconds(data.get('startTime'), data.get('endTime'))

        percent = round(processed / total * 100) if total > 0 else 0

        remaining = None
        if is_running and processed > 0 and total > 0 and elapsed:
            fraction = processed / total
            remaining = max(0, round(elapsed / fraction - elapsed))
        elif not is_running and processed > 0:
            remaining = 0

        error = data.get('error')
        return JobStatus(
            is_running=is_running,
            is_finished=bool(data.get('isFinished', not is_running and processed > 0)),
            processed=processed,
            total=total,
            success_count=updated,
            failure_count=max(0, processed - updated),
            elapsed_seconds=elapsed,
            percent_complete=percent,
            estimated_remaining_seconds=remaining,
            error=error,
            connection_lost=_mentions_disconnection(error),
            raw=data,
        )

    def parse_start(self, data: Any) -> Optional[JobStatus]:
        # A rota de início devolve só {message, total}
        if isinstance(data, dict) and 'total' in data:
            return JobStatus(is_running=True, total=data.get('total') or 0, raw=data)
        return None

    def summary(self, status: JobStatus) -> str:
        return (
            f"Processamento concluído! {status.success_count} fotos atualizadas de "
            f"{status.total} clientes ({status.processed} processados) "
            f"em {format_elapsed_time(status.elapsed_seconds)}"
        )


SEQUENTIAL_VALIDATION = SequentialValidationJob()
SEQUENTIAL_PROFILE_PICTURES = SequentialProfilePicturesJob()

JOBS: Dict[str, JobDefinition] = {
    SEQUENTIAL_VALIDATION.name: SEQUENTIAL_VALIDATION,
    SEQUENTIAL_PROFILE_PICTURES.name: SEQUENTIAL_PROFILE_PICTURES,
}


# ========== TIMER ==========

class RepeatingTimer:
    """Chama o callback a cada intervalo numa thread daemon até cancel()"""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(target=self._run, name='job-poller', daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                logger.exception(f"Erro inesperado na consulta de status: {e}")

    def cancel(self):
        self._stop_event.set()

    @property
    def is_active(self) -> bool:
        return not self._stop_event.is_set()


# ========== POLLER ==========

class JobPoller:
    def __init__(self, api: CRMApiClient, job: JobDefinition, notifier: Notifier = None,
                 cache: QueryCache = None, interval: float = None,
                 max_consecutive_failures: int = None, timer_factory: Callable = None):
        """
        Args:
            api: Cliente da API do CRM
            job: Processo acompanhado (SEQUENTIAL_VALIDATION ou SEQUENTIAL_PROFILE_PICTURES)
            notifier: Destino das notificações para o usuário
            cache: Cache de consultas invalidado após reconexão
            interval: Segundos entre consultas de status
            max_consecutive_failures: Falhas seguidas de consulta antes de desistir
            timer_factory: Fábrica (intervalo, callback) -> timer com start()/cancel()
        """
        self.api = api
        self.whatsapp = WhatsAppClient(api)
        self.job = job
        self.notifier = notifier or Notifier()
        self.cache = cache
        self.interval = interval if interval is not None else active_config.JOB_POLL_INTERVAL
        self.max_consecutive_failures = (
            max_consecutive_failures if max_consecutive_failures is not None
            else active_config.JOB_MAX_POLL_FAILURES
        )
        self.timer_factory = timer_factory or RepeatingTimer

        self.state = JobState.IDLE
        self.status: Optional[JobStatus] = None
        self.error_message: Optional[str] = None
        self.consecutive_failures = 0
        self.reconnection_required = False
        self.connection_error: Optional[str] = None
        self.is_reconnecting = False

        self._timer = None
        # Muda a cada timer encerrado e a cada início; respostas de outra geração são descartadas
        self._generation = 0
        self._lock = threading.RLock()
        self._done = threading.Event()
        self._listeners: List[Callable[[str, Optional[JobStatus]], None]] = []

    # ---------- estado interno ----------

    @property
    def is_polling(self) -> bool:
        return self._timer is not None

    @property
    def can_start(self) -> bool:
        with self._lock:
            if self.state in (JobState.STARTING, JobState.POLLING):
                return False
            return not (self.status and self.status.is_running)

    def subscribe(self, listener: Callable[[str, Optional[JobStatus]], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self):
        with self._lock:
            listeners = list(self._listeners)
            state, status = self.state, self.status
        for listener in listeners:
            listener(state, status)

    def _set_state(self, state: str):
        if state != self.state:
            logger.info(f"[{self.job.name}] {self.state} -> {state}")
        self.state = state
        if state in JobState.TERMINAL:
            self._done.set()
        else:
            self._done.clear()

    def _start_polling(self):
        if self._timer is not None:
            return
        self._timer = self.timer_factory(self.interval, self.tick)
        self._timer.start()
        logger.debug(f"[{self.job.name}] Consultando status a cada {self.interval}s")

    def _stop_polling(self):
        # Cada timer é cancelado uma única vez
        timer, self._timer = self._timer, None
        self._generation += 1
        if timer is not None:
            timer.cancel()
            logger.debug(f"[{self.job.name}] Consulta de status encerrada")

    def _finish(self, state: str):
        self._stop_polling()
        self._set_state(state)

    # ---------- operações ----------

    def start(self) -> bool:
        """
        Inicia o processo no servidor e passa a consultar o status

        Recusado (sem requisição) enquanto o processo estiver em andamento.
        """
        with self._lock:
            if not self.can_start:
                logger.warning(f"[{self.job.name}] Processo já em andamento, início ignorado")
                return False
            self.error_message = None
            self.consecutive_failures = 0
            self._generation += 1
            generation = self._generation
            self._set_state(JobState.STARTING)
        self._emit()

        try:
            data = self.api.request('POST', self.job.start_path)
        except ApiRequestError as e:
            error = self.job.start_error(e)
            logger.error(f"[{self.job.name}] Erro ao iniciar: {error}")
            with self._lock:
                if generation != self._generation:
                    return False
                self.error_message = str(error)
                if error.connection_lost:
                    self.reconnection_required = True
                    self.connection_error = str(error)
                self._finish(JobState.ERROR)
            self.notifier.error(f"Erro ao iniciar: {self.job.label}", str(error))
            self._emit()
            return False

        with self._lock:
            if generation != self._generation or self.state != JobState.STARTING:
                # Tela fechada durante o pedido de início
                logger.info(f"[{self.job.name}] Início concluído após o encerramento, sem acompanhar")
                return False
            started_status = self.job.parse_start(data)
            if started_status is not None:
                self.status = started_status
            self.reconnection_required = False
            self.connection_error = None
            self._set_state(JobState.POLLING)
            self._start_polling()

        self.notifier.success(self.job.started_title, self.job.started_description)
        self._emit()
        return True

    def tick(self):
        """Uma consulta de status (chamada pelo timer)"""
        with self._lock:
            if self.state != JobState.POLLING:
                return
            generation = self._generation

        try:
            data = self.api.request('GET', self.job.status_path)
        except ApiRequestError as e:
            self._poll_failed(e, generation)
            return

        self._apply_status(self.job.parse_status(data), generation)

    def _poll_failed(self, error: ApiRequestError, generation: int):
        with self._lock:
            if self.state != JobState.POLLING or generation != self._generation:
                return
            self.consecutive_failures += 1
            logger.warning(
                f"[{self.job.name}] Falha ao consultar status "
                f"({self.consecutive_failures}/{self.max_consecutive_failures}): {error}"
            )
            if self.consecutive_failures < self.max_consecutive_failures:
                return
            self.error_message = GENERIC_POLL_ERROR
            self._finish(JobState.ERROR)

        self.notifier.error("Erro no processamento", GENERIC_POLL_ERROR)
        self._emit()

    def _apply_status(self, status: JobStatus, generation: int):
        with self._lock:
            if self.state != JobState.POLLING or generation != self._generation:
                logger.debug(f"[{self.job.name}] Status de consulta anterior descartado")
                return
            self.status = status
            self.consecutive_failures = 0

            if status.connection_lost:
                self.reconnection_required = True
                self.connection_error = status.error or NOT_CONNECTED_MESSAGE
                self.error_message = self.connection_error
                self._finish(JobState.ERROR)
            elif status.error:
                self.error_message = status.error
                self._finish(JobState.ERROR)
            elif status.is_finished or not status.is_running:
                self._finish(JobState.FINISHED)
            state = self.state

        if state == JobState.FINISHED:
            logger.info(f"[{self.job.name}] {self.job.summary(status)}")
            self.notifier.success(self.job.finished_title, self.job.summary(status))
        elif state == JobState.ERROR:
            self.notifier.error("Erro no processamento", self.error_message)
        self._emit()

    def stop(self) -> bool:
        """Pede a interrupção ao servidor e encerra as consultas"""
        with self._lock:
            running = self.state == JobState.POLLING or (self.status and self.status.is_running)
            if not running:
                logger.info(f"[{self.job.name}] Nenhum processo em andamento para interromper")
                return False

        success = True
        try:
            data = self.api.request('POST', self.job.stop_path)
        except ApiRequestError as e:
            success = False
            logger.error(f"[{self.job.name}] Erro ao interromper: {e}")
            self.notifier.error(f"Erro ao interromper: {self.job.label}", str(e))
        else:
            stopped_status = self.job.parse_stop(data)
            with self._lock:
                if stopped_status is not None:
                    self.status = stopped_status
                elif self.status is not None:
                    self.status.is_running = False
            self.notifier.success(self.job.stopped_title, self.job.stopped_description)
        finally:
            with self._lock:
                self._finish(JobState.STOPPED)

        self._emit()
        return success

    def open(self) -> Optional[JobStatus]:
        """
        Consulta o status atual (force=true) ao abrir a tela

        Se já houver processo em andamento, passa a acompanhá-lo sem
        chamar a rota de início.
        """
        with self._lock:
            generation = self._generation

        try:
            data = self.api.request('GET', self.job.status_path, params={'force': 'true'})
        except ApiRequestError as e:
            logger.warning(f"[{self.job.name}] Não foi possível obter o status atual: {e}")
            return None

        status = self.job.parse_status(data)
        with self._lock:
            if generation != self._generation:
                logger.info(f"[{self.job.name}] Status recebido após o encerramento, ignorado")
                return None
            self.status = status
            if status.connection_lost:
                self.reconnection_required = True
                self.connection_error = status.error
            if status.is_running and self.state != JobState.POLLING:
                logger.info(f"[{self.job.name}] Processo em andamento encontrado, acompanhando")
                self.error_message = None
                self.consecutive_failures = 0
                self._set_state(JobState.POLLING)
                self._start_polling()

        self._emit()
        return status

    def close(self):
        """Encerra as consultas sem avisar o servidor (o processo remoto continua)"""
        with self._lock:
            self._stop_polling()
            if self.state in (JobState.STARTING, JobState.POLLING):
                self._set_state(JobState.IDLE)
        self._emit()

    def reconnect(self) -> bool:
        """Força a verificação da conexão do WhatsApp e retoma o acompanhamento"""
        with self._lock:
            if self.is_reconnecting:
                return False
            self.is_reconnecting = True
            self.connection_error = None

        try:
            data = self.whatsapp.force_check_status()
        except ApiRequestError as e:
            message = _error_body(e).get('errorMessage') or str(e)
            logger.error(f"[{self.job.name}] Erro ao reconectar: {message}")
            with self._lock:
                self.connection_error = message
                if _mentions_disconnection(message):
                    self.reconnection_required = True
                self.is_reconnecting = False
            self._emit()
            return False

        connection_state = data.get('status') if isinstance(data, dict) else None
        if not is_connected_status(connection_state):
            logger.warning(f"[{self.job.name}] Instância ainda desconectada (status: {connection_state})")
            with self._lock:
                self.connection_error = STILL_DISCONNECTED_MESSAGE
                self.reconnection_required = True
                self.is_reconnecting = False
            self._emit()
            return False

        with self._lock:
            self.reconnection_required = False
            self.is_reconnecting = False
        self.notifier.success("Conexão restaurada", "A instância do WhatsApp foi reconectada com sucesso.")

        if self.cache is not None:
            self.cache.invalidate(('/api/whatsapp/instances',))

        self.open()
        return True

    def wait(self, timeout: float = None) -> bool:
        """Bloqueia até um estado final; retorna False se o tempo acabar"""
        return self._done.wait(timeout)

    def summary(self) -> str:
        with self._lock:
            status = self.status
        if status is None:
            return f"{self.job.label}: nenhum processo executado"
        return self.job.summary(status)

    def remaining_time(self) -> str:
        with self._lock:
            status = self.status
        return format_remaining_time(status.estimated_remaining_seconds if status else None)
