"""
CRM Imobiliário - Arquivo Principal

Cliente de linha de comando para o servidor do CRM: acompanha os
processos sequenciais do WhatsApp, mostra o dashboard e gera relatórios.

MODOS DE USO:
==============

1. PROCESSOS DO WHATSAPP (Ctrl+C interrompe o processo no servidor):
   python main.py --modo validacao       # Validação sequencial de números
   python main.py --modo fotos           # Busca sequencial de fotos de perfil

2. DASHBOARD E RELATÓRIOS:
   python main.py --modo dashboard --periodo month
   python main.py --modo relatorio --relatorio sales --periodo quarter --exportar

3. UTILITÁRIOS:
   python main.py --modo migracoes       # Aplicar migrações no banco
   python main.py --config-test          # Testar configurações

CONFIGURAÇÃO:
- URL e token da API do CRM: arquivo .env (CRM_API_URL, CRM_ACCESS_TOKEN)
- Proxy REST do banco: DATABASE_REST_URL, DATABASE_REST_API_KEY
"""

import argparse
import logging

from crm_imobiliario.api_client import CRMApiClient
from crm_imobiliario.config import active_config
from crm_imobiliario.dashboard import PerformanceRow, build_report, rank_performance
from crm_imobiliario.database_rest import DatabaseRestClient
from crm_imobiliario.errors import ApiRequestError, CRMError
from crm_imobiliario.excel_export import ReportExcelExporter
from crm_imobiliario.formatters import format_currency, format_number
from crm_imobiliario.job_poller import JOBS, JobPoller, JobState, format_elapsed_time
from crm_imobiliario.migrations import run_migrations
from crm_imobiliario.notifications import Notifier
from crm_imobiliario.query_cache import QueryCache
from crm_imobiliario.stores import PERIODS, REPORTS, DashboardMetrics, DashboardStore, ReportsStore

logger = logging.getLogger(__name__)

MODOS_PROCESSO = {
    'validacao': 'sequential-validation',
    'fotos': 'sequential-profile-pictures',
}


def main():
    """
    Função principal do sistema
    """
    print("🏠 " + "=" * 70)
    print("   CRM IMOBILIÁRIO - CLIENTE DE LINHA DE COMANDO")
    print("=" * 73)

    parser = argparse.ArgumentParser(
        description='CRM Imobiliário - processos do WhatsApp, dashboard e relatórios',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXEMPLOS DE USO:
  python main.py --modo validacao                    # Validação sequencial de WhatsApp
  python main.py --modo fotos --intervalo 2          # Fotos de perfil, status a cada 2s
  python main.py --modo dashboard --periodo 7days    # Métricas dos últimos 7 dias
  python main.py --modo relatorio --relatorio production --exportar
  python main.py --config-test                       # Testar configurações
        """
    )

    parser.add_argument('--modo',
                        choices=['validacao', 'fotos', 'dashboard', 'relatorio', 'migracoes'],
                        default='dashboard',
                        help='Modo de operação (padrão: dashboard)')
    parser.add_argument('--periodo', choices=list(PERIODS), default='month', help='Período do dashboard/relatório')
    parser.add_argument('--usuario', type=int, help='ID do usuário para filtrar o dashboard')
    parser.add_argument('--relatorio', choices=list(REPORTS), default='clientes', help='Relatório gerado no modo relatorio')
    parser.add_argument('--exportar', action='store_true', help='Exportar o relatório para Excel')
    parser.add_argument('--intervalo', type=float, help='Segundos entre consultas de status dos processos')
    parser.add_argument('--config-test', action='store_true', help='Testar configurações do sistema')

    args = parser.parse_args()
    active_config.setup_logging('crm_cli')

    if not args.config_test:
        print(f"🎯 Modo selecionado: {args.modo.upper()}")
        print()

    try:
        if args.config_test:
            test_configuration()
        elif args.modo in MODOS_PROCESSO:
            executar_processo(MODOS_PROCESSO[args.modo], args.intervalo)
        elif args.modo == 'dashboard':
            mostrar_dashboard(args.periodo, args.usuario)
        elif args.modo == 'relatorio':
            gerar_relatorio(args.relatorio, args.periodo, args.exportar)
        elif args.modo == 'migracoes':
            aplicar_migracoes()
    except KeyboardInterrupt:
        print("\n⏹️  Execução interrompida pelo usuário")
    except CRMError as e:
        logger.error(f"❌ Erro: {e}")
        print(f"\n❌ Erro: {e}")

    print("\n" + "=" * 73)
    print("🏁 Execução finalizada!")
    print("=" * 73)


def test_configuration() -> bool:
    """
    Testa configurações do sistema
    """
    logger.info("=== TESTE DE CONFIGURAÇÃO ===")

    if not active_config.validate_config():
        logger.error("❌ Configuração inválida")
        return False

    api = CRMApiClient()
    try:
        if api.test_connection():
            logger.info(f"✅ API do CRM acessível em {api.base_url}")
        else:
            logger.error("❌ Falha na conexão com a API do CRM")
            return False
    finally:
        api.close()

    db = DatabaseRestClient()
    try:
        if db.test_connection():
            logger.info(f"✅ Proxy REST do banco acessível em {db.base_url}")
        else:
            logger.error("❌ Falha na conexão com o proxy REST do banco")
            return False
    finally:
        db.close()

    logger.info("✅ Todas as configurações estão corretas!")
    return True


def _mostrar_notificacao(notificacao):
    print(f"   {notificacao}")


def _mostrar_progresso(state, status):
    if state != JobState.POLLING or status is None:
        return
    atual = f" | atual: {status.current_item}" if status.current_item else ""
    print(
        f"   📊 {status.processed}/{status.total} ({status.percent_complete}%)"
        f" | ✅ {status.success_count} ❌ {status.failure_count}"
        f" | {format_elapsed_time(status.elapsed_seconds)}{atual}"
    )


def executar_processo(job_name: str, intervalo: float = None):
    """
    Inicia (ou acompanha, se já estiver rodando) um processo sequencial do WhatsApp
    Ctrl+C envia o pedido de parada ao servidor
    """
    job = JOBS[job_name]
    logger.info(f"=== {job.label.upper()} ===")

    api = CRMApiClient()
    notifier = Notifier()
    notifier.subscribe(_mostrar_notificacao)
    poller = JobPoller(api, job, notifier=notifier, cache=QueryCache(), interval=intervalo)
    poller.subscribe(_mostrar_progresso)

    try:
        status = poller.open()
        if not (status and status.is_running):
            poller.start()

        if poller.reconnection_required:
            print(f"🔌 {poller.connection_error or 'Instância do WhatsApp desconectada'}")
            print("   Tentando reconectar...")
            if poller.reconnect() and poller.can_start:
                poller.start()

        try:
            while poller.state == JobState.POLLING and not poller.wait(1):
                pass
        except KeyboardInterrupt:
            print("\n⏹️  Interrompendo processo no servidor...")
            poller.stop()

        logger.info(f"Estado final: {poller.state}")
        if poller.error_message:
            logger.error(f"❌ {poller.error_message}")
        print(f"\n📋 {poller.summary()}")
    finally:
        poller.close()
        api.close()


def mostrar_dashboard(periodo: str, usuario: int = None):
    """
    Mostra as métricas do dashboard e o ranking de desempenho
    """
    logger.info(f"=== DASHBOARD ({PERIODS[periodo]}) ===")
    store = DashboardStore()
    store.set_period(periodo)
    store.set_selected_user(usuario)

    api = CRMApiClient()
    try:
        store.set_is_loading(True)
        store.set_metrics(DashboardMetrics.from_api(api.get_dashboard_metrics(periodo, usuario)))
        store.set_recent_clientes(api.get_recent_clientes(assigned_to=usuario))
        store.set_upcoming_appointments(api.get_upcoming_appointments(user_id=usuario))
        ranking = rank_performance([PerformanceRow.from_api(item) for item in api.get_users_performance(periodo)])
    finally:
        store.set_is_loading(False)
        api.close()

    metrics = store.metrics
    rates = metrics.conversion_rates
    print(f"👥 Novos clientes: {format_number(metrics.new_clientes)} (média da equipe: {metrics.team_averages.new_clientes})")
    print(f"📅 Agendamentos:   {format_number(metrics.appointments)} ({rates.appointments_to_clientes}% dos clientes)")
    print(f"🏠 Visitas:        {format_number(metrics.visits)} ({rates.visits_to_appointments}% dos agendamentos)")
    print(f"💰 Vendas:         {format_number(metrics.sales)} ({rates.sales_to_visits}% das visitas)")

    if store.recent_clientes:
        print("\n🆕 Clientes recentes:")
        for cliente in store.recent_clientes:
            print(f"   - {cliente.full_name} ({cliente.status})")

    if store.upcoming_appointments:
        print("\n⏰ Próximos agendamentos:")
        for appointment in store.upcoming_appointments:
            print(f"   - {appointment.scheduled_at:%d/%m/%Y %H:%M} {appointment.title or appointment.type}")

    if ranking:
        print("\n🏆 Ranking de vendas:")
        for posicao, row in enumerate(ranking[:10], 1):
            print(f"   {posicao}. {row.full_name}: {row.sales} vendas, {row.visits} visitas, conversão {row.conversion}%")


def gerar_relatorio(relatorio: str, periodo: str, exportar: bool = False):
    """
    Monta um relatório gerencial a partir dos dados da API e opcionalmente exporta para Excel
    """
    logger.info(f"=== RELATÓRIO DE {REPORTS[relatorio].upper()} ({PERIODS[periodo]}) ===")
    store = ReportsStore()
    store.set_current_report(relatorio)
    store.set_period(periodo)

    api = CRMApiClient()
    try:
        store.set_is_loading(True)
        dados = build_report(
            relatorio,
            clientes=api.get_all_clientes(),
            appointments=api.get_appointments(),
            visits=api.get_visits(),
            sales=api.get_sales(),
            users=api.get_users(),
            period=periodo,
        )
        store.set_report_data(dados)
    except ApiRequestError as e:
        logger.error(f"❌ Erro ao buscar dados do relatório: {e}")
        return
    finally:
        store.set_is_loading(False)
        api.close()

    for chave, valor in dados.items():
        if isinstance(valor, dict):
            print(f"📂 {chave}: {len(valor)} itens")
        elif chave == 'totalValue':
            print(f"💰 {chave}: {format_currency(valor)}")
        else:
            print(f"📊 {chave}: {format_number(valor)}")

    if exportar:
        filepath = ReportExcelExporter().export_report(relatorio, dados, period=periodo)
        print(f"\n📁 Relatório exportado: {filepath}")


def aplicar_migracoes():
    """
    Aplica as migrações pendentes no banco via proxy REST
    """
    logger.info("=== MIGRAÇÕES ===")
    db = DatabaseRestClient()
    try:
        resumo = run_migrations(db)
    finally:
        db.close()

    for resultado in resumo['results']:
        icone = "✅" if resultado.success else "❌"
        print(f"{icone} {resultado.id:03d} {resultado.name}: {resultado.message}")

    if not resumo['success']:
        logger.error("❌ Migrações interrompidas por erro")


if __name__ == "__main__":
    main()
