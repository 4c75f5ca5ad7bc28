import json

import pytest

from crm_imobiliario.errors import ApiRequestError
from crm_imobiliario.job_poller import (
    GENERIC_POLL_ERROR, SEQUENTIAL_PROFILE_PICTURES, SEQUENTIAL_VALIDATION,
    STILL_DISCONNECTED_MESSAGE, JobPoller, JobState, format_elapsed_time, format_remaining_time
)

START = '/api/whatsapp/sequential-validation/start'
STOP = '/api/whatsapp/sequential-validation/stop'
STATUS = '/api/whatsapp/sequential-validation/status'
FORCE_CHECK = '/api/whatsapp/force-check-status'

RUNNING = {
    'message': 'Status obtido',
    'status': {
        'isProcessing': True,
        'totalClients': 10,
        'completedCount': 4,
        'successCount': 3,
        'failureCount': 1,
        'percentComplete': 40,
        'estimatedTimeRemaining': 30,
        'currentClientName': 'Maria Souza',
        'startTime': '2026-10-17T10:00:00.000Z',
    },
}

FINISHED = {
    'message': 'Status obtido',
    'status': {
        'isProcessing': False,
        'totalClients': 10,
        'completedCount': 10,
        'successCount': 7,
        'failureCount': 3,
        'percentComplete': 100,
        'startTime': '2026-10-17T10:00:00.000Z',
        'endTime': '2026-10-17T10:02:05.000Z',
    },
}


def poll_error():
    return ApiRequestError('500: Internal Server Error', status_code=500)


@pytest.fixture
def poller(fake_api, notifier, cache, timers):
    return JobPoller(fake_api, SEQUENTIAL_VALIDATION, notifier=notifier, cache=cache,
                     interval=3, max_consecutive_failures=5, timer_factory=timers)


@pytest.fixture
def started(poller, fake_api):
    fake_api.on('POST', START, RUNNING)
    assert poller.start() is True
    return poller


class TestStart:
    def test_start_inicia_consulta(self, started, timers, notifier):
        assert started.state == JobState.POLLING
        assert timers.last.started
        assert timers.last.interval == 3
        assert started.status.processed == 4
        assert notifier.last.title == "Validação iniciada"

    def test_start_recusado_com_processo_em_andamento(self, started, fake_api):
        assert started.can_start is False
        assert started.start() is False
        assert fake_api.count('POST', START) == 1

    def test_start_com_instancia_desconectada(self, poller, fake_api, notifier, timers):
        body = json.dumps({'error': 'not_connected', 'errorMessage': 'A instância do WhatsApp não está conectada'})
        fake_api.on('POST', START, ApiRequestError('400: Bad Request', status_code=400, body=body))

        assert poller.start() is False
        assert poller.state == JobState.ERROR
        assert poller.reconnection_required is True
        assert 'não está conectada' in poller.error_message
        assert notifier.last.is_error
        assert timers.timers == []

    def test_start_com_erro_generico(self, poller, fake_api):
        fake_api.on('POST', START, ApiRequestError('500: erro', status_code=500, body='falhou'))

        assert poller.start() is False
        assert poller.state == JobState.ERROR
        assert poller.reconnection_required is False
        assert poller.error_message == 'Erro HTTP: 500'


class TestPolling:
    def test_conclusao_cancela_timer_uma_vez(self, started, fake_api, timers, notifier):
        fake_api.on('GET', STATUS, FINISHED)
        timers.last.fire()

        assert started.state == JobState.FINISHED
        assert timers.last.cancel_count == 1
        assert notifier.last.title == "Validação concluída"
        assert "10 de 10" in notifier.last.description
        assert "2m 5s" in notifier.last.description

        started.close()
        assert timers.last.cancel_count == 1
        assert started.wait(0) is True

    def test_em_andamento_continua_consultando(self, started, fake_api, timers):
        fake_api.on('GET', STATUS, RUNNING)
        timers.last.fire()
        timers.last.fire()

        assert started.state == JobState.POLLING
        assert timers.last.cancel_count == 0
        assert fake_api.count('GET', STATUS) == 2

    def test_cinco_falhas_seguidas_encerram(self, started, fake_api, timers, notifier):
        fake_api.on('GET', STATUS, poll_error())
        for _ in range(4):
            timers.last.fire()
        assert started.state == JobState.POLLING
        assert started.consecutive_failures == 4

        timers.last.fire()
        assert started.state == JobState.ERROR
        assert started.error_message == GENERIC_POLL_ERROR
        assert timers.last.cancel_count == 1
        assert notifier.last.is_error

    def test_sucesso_zera_contador_de_falhas(self, started, fake_api, timers):
        fake_api.on('GET', STATUS, poll_error(), poll_error(), poll_error(), poll_error(), RUNNING)
        for _ in range(5):
            timers.last.fire()
        assert started.consecutive_failures == 0

        fake_api.on('GET', STATUS, poll_error())
        for _ in range(4):
            timers.last.fire()
        assert started.state == JobState.POLLING

    def test_desconexao_durante_processo(self, started, fake_api, timers):
        lost = {'status': dict(RUNNING['status'], isProcessing=False,
                               errorMessage='A instância do WhatsApp não está conectada')}
        fake_api.on('GET', STATUS, lost)
        timers.last.fire()

        assert started.state == JobState.ERROR
        assert started.reconnection_required is True
        assert timers.last.cancel_count == 1

    def test_consulta_ignorada_fora_do_polling(self, started, fake_api, timers):
        fake_api.on('POST', STOP, {'message': 'ok'})
        started.stop()
        timers.last.fire()

        assert fake_api.count('GET', STATUS) == 0


class TestStop:
    def test_stop_interrompe(self, started, fake_api, timers, notifier):
        fake_api.on('POST', STOP, {'message': 'Validação interrompida'})

        assert started.stop() is True
        assert started.state == JobState.STOPPED
        assert started.status.is_running is False
        assert timers.last.cancel_count == 1
        assert notifier.last.title == "Validação interrompida"
        assert started.can_start is True

    def test_stop_com_erro_ainda_encerra_consulta(self, started, fake_api, timers, notifier):
        fake_api.on('POST', STOP, ApiRequestError('500: erro', status_code=500))

        assert started.stop() is False
        assert started.state == JobState.STOPPED
        assert timers.last.cancel_count == 1
        assert notifier.last.is_error

    def test_stop_sem_processo(self, poller, fake_api):
        assert poller.stop() is False
        assert fake_api.calls == []


class TestOpenAndReconnect:
    def test_open_acompanha_processo_em_andamento(self, poller, fake_api, timers):
        fake_api.on('GET', STATUS, RUNNING)

        status = poller.open()

        assert status.is_running
        assert poller.state == JobState.POLLING
        assert timers.last.started
        assert fake_api.count('POST', START) == 0
        assert fake_api.calls[0][3] == {'force': 'true'}

    def test_open_sem_processo(self, poller, fake_api, timers):
        fake_api.on('GET', STATUS, FINISHED)

        status = poller.open()

        assert status.is_finished
        assert poller.state == JobState.IDLE
        assert timers.timers == []

    def test_open_com_erro_retorna_none(self, poller, fake_api):
        fake_api.on('GET', STATUS, poll_error())
        assert poller.open() is None

    def test_close_volta_para_idle(self, started, timers):
        started.close()
        assert started.state == JobState.IDLE
        assert timers.last.cancel_count == 1

    def test_reconnect_restaura_conexao(self, poller, fake_api, cache, notifier):
        instances = []
        cache.subscribe(('/api/whatsapp/instances',), instances.append, fetcher=lambda: ['inst-1'])
        cache.fetch(('/api/whatsapp/instances',))
        poller.reconnection_required = True
        fake_api.on('POST', FORCE_CHECK, {'status': 'open'})
        fake_api.on('GET', STATUS, FINISHED)

        assert poller.reconnect() is True
        assert poller.reconnection_required is False
        assert poller.is_reconnecting is False
        assert cache.get_entry(('/api/whatsapp/instances',)).fetch_count == 2
        assert fake_api.count('GET', STATUS) == 1
        assert any(n.title == "Conexão restaurada" for n in notifier.history)

    def test_reconnect_ainda_desconectado(self, poller, fake_api):
        fake_api.on('POST', FORCE_CHECK, {'status': 'close'})

        assert poller.reconnect() is False
        assert poller.reconnection_required is True
        assert poller.connection_error == STILL_DISCONNECTED_MESSAGE
        assert fake_api.count('GET', STATUS) == 0


def intercept(fake_api, path, action):
    """Executa action() uma vez, no meio da requisição para path"""
    original = fake_api.request
    pending = [action]

    def request(method, url, *args, **kwargs):
        if url == path and pending:
            pending.pop()()
        return original(method, url, *args, **kwargs)

    fake_api.request = request


class TestCicloDeVida:
    def test_close_durante_o_inicio_nao_cria_timer(self, poller, fake_api, timers):
        fake_api.on('POST', START, RUNNING)
        intercept(fake_api, START, poller.close)

        assert poller.start() is False
        assert poller.state == JobState.IDLE
        assert poller.is_polling is False
        assert timers.timers == []

    def test_close_durante_o_open_nao_acompanha(self, poller, fake_api, timers):
        fake_api.on('GET', STATUS, RUNNING)
        intercept(fake_api, STATUS, poller.close)

        assert poller.open() is None
        assert poller.state == JobState.IDLE
        assert timers.timers == []

    def test_status_da_execucao_anterior_e_descartado(self, started, fake_api, timers):
        fake_api.on('POST', STOP, {'message': 'ok'})
        fake_api.on('GET', STATUS, FINISHED)

        def parar_e_reiniciar():
            started.stop()
            assert started.start() is True

        intercept(fake_api, STATUS, parar_e_reiniciar)
        timers.timers[0].fire()

        assert started.state == JobState.POLLING
        assert len(timers.timers) == 2
        assert timers.last.cancel_count == 0
        assert started.status.is_running

    def test_falha_da_execucao_anterior_nao_conta(self, started, fake_api, timers):
        fake_api.on('POST', STOP, {'message': 'ok'})
        fake_api.on('GET', STATUS, poll_error())

        def parar_e_reiniciar():
            started.stop()
            started.start()

        intercept(fake_api, STATUS, parar_e_reiniciar)
        timers.timers[0].fire()

        assert started.consecutive_failures == 0
        assert started.state == JobState.POLLING


class TestProfilePictures:
    def test_status_calcula_progresso(self):
        status = SEQUENTIAL_PROFILE_PICTURES.parse_status({
            'isRunning': True,
            'clientsProcessed': 5,
            'clientsTotal': 10,
            'updatedPhotos': 3,
            'elapsedTimeInSeconds': 50,
        })

        assert status.percent_complete == 50
        assert status.success_count == 3
        assert status.failure_count == 2
        assert status.estimated_remaining_seconds == 50

    def test_start_usa_total_da_resposta(self, fake_api, notifier, timers):
        fake_api.on('POST', '/api/whatsapp/sequential-profile-pictures/start',
                    {'message': 'Processamento iniciado', 'total': 42})
        poller = JobPoller(fake_api, SEQUENTIAL_PROFILE_PICTURES, notifier=notifier, timer_factory=timers)

        assert poller.start() is True
        assert poller.status.total == 42
        assert poller.status.is_running


@pytest.mark.parametrize('seconds, expected', [
    (None, "Calculando..."),
    (0, "Concluído"),
    (45, "45s"),
    (125, "2m 5s"),
])
def test_format_remaining_time(seconds, expected):
    assert format_remaining_time(seconds) == expected


def test_format_elapsed_time():
    assert format_elapsed_time(3725) == "1h 2m 5s"
    assert format_elapsed_time(None) == "0s"
