"""
Configurações do CRM Imobiliário
"""
import os
from typing import List
from dotenv import load_dotenv

# Carregar variáveis do arquivo .env
load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Lê variável de ambiente inteira, caindo no padrão se inválida"""
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _is_development() -> bool:
    return os.getenv('CRM_ENV', os.getenv('NODE_ENV', 'development')).lower() == 'development'


class Config:
    # Ambiente
    CRM_ENV = os.getenv('CRM_ENV', os.getenv('NODE_ENV', 'development'))

    # API HTTP do CRM (rotas /api/...)
    CRM_API_URL = os.getenv('CRM_API_URL', 'http://localhost:5000')
    CRM_ACCESS_TOKEN = os.getenv('CRM_ACCESS_TOKEN', '')
    CRM_API_TIMEOUT = _env_int('CRM_API_TIMEOUT', 30000)  # milissegundos

    # Proxy REST do banco (estilo PostgREST)
    # Porta padrão: 3002 em desenvolvimento, 3001 em produção
    DATABASE_REST_PORT = _env_int('DATABASE_REST_PORT', 3002 if _is_development() else 3001)
    DATABASE_REST_URL = os.getenv('DATABASE_REST_URL') or f'http://localhost:{DATABASE_REST_PORT}/api/db'
    DATABASE_REST_API_KEY = os.getenv('DATABASE_REST_API_KEY') or None
    DATABASE_REST_TIMEOUT = _env_int('DATABASE_REST_TIMEOUT', 30000)  # milissegundos

    # ========== PROCESSOS SEQUENCIAIS DO WHATSAPP ==========
    # Intervalo entre consultas de status (segundos)
    JOB_POLL_INTERVAL = float(os.getenv('JOB_POLL_INTERVAL', '3'))
    # Falhas consecutivas de consulta antes de desistir
    JOB_MAX_POLL_FAILURES = _env_int('JOB_MAX_POLL_FAILURES', 5)
    # Timeout da verificação forçada de conexão (segundos)
    WHATSAPP_RECONNECT_TIMEOUT = 10

    # Estados que a API do WhatsApp usa para indicar instância conectada
    WHATSAPP_CONNECTED_STATES: List[str] = [
        'open', 'connected', 'CONNECTED', 'ONLINE', 'online', 'ready'
    ]

    # Configurações de relatórios
    REPORTS_OUTPUT_FOLDER = os.getenv('REPORTS_OUTPUT_FOLDER', './output/relatorios')

    # Configurações de log
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOGS_FOLDER = os.getenv('LOGS_FOLDER', './logs')

    @classmethod
    def setup_logging(cls, script_name: str = 'crm_imobiliario'):
        """
        Configura o sistema de logging com arquivo de log com timestamp

        Args:
            script_name: Nome do script para identificar o log
        """
        import logging
        from datetime import datetime

        # Criar pasta logs se não existir
        os.makedirs(cls.LOGS_FOLDER, exist_ok=True)

        # Gerar nome do arquivo com timestamp
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_filename = f"{script_name}_{timestamp}.log"
        log_filepath = os.path.join(cls.LOGS_FOLDER, log_filename)

        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL.upper(), logging.INFO),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.FileHandler(log_filepath, encoding='utf-8'),
                logging.StreamHandler()  # Também mostra no console
            ]
        )

        logger = logging.getLogger(__name__)
        logger.info("=== INICIANDO CRM IMOBILIÁRIO ===")
        logger.info(f"Arquivo de log: {log_filepath}")
        logger.info(f"Nível de log: {cls.LOG_LEVEL}")

        return logger

    @classmethod
    def validate_config(cls) -> bool:
        """Valida se as configurações obrigatórias estão definidas"""
        if not cls.CRM_API_URL:
            print("ERRO: CRM_API_URL não está definido!")
            return False

        if not cls.CRM_ACCESS_TOKEN:
            print("AVISO: CRM_ACCESS_TOKEN não está definido. Rotas autenticadas retornarão 401.")

        if not cls.DATABASE_REST_API_KEY:
            print("AVISO: DATABASE_REST_API_KEY não está definido. Proxy REST será acessado sem chave.")

        if not 2 <= cls.JOB_POLL_INTERVAL <= 3:
            print(f"AVISO: JOB_POLL_INTERVAL={cls.JOB_POLL_INTERVAL}s fora da faixa recomendada (2-3s)")

        return True


# Configurações específicas por ambiente
class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False


# Configuração ativa (definida pela variável CRM_ENV)
active_config = DevelopmentConfig() if _is_development() else ProductionConfig()
