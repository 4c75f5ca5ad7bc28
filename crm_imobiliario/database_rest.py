"""
Cliente REST para o banco de dados
Acessa o PostgreSQL através de um proxy HTTP estilo PostgREST
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from crm_imobiliario.config import active_config
from crm_imobiliario.errors import DatabaseRestError

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    command: str = 'UNKNOWN'


class DatabaseRestClient:
    def __init__(self, base_url: str = None, api_key: str = None, timeout: int = None):
        """
        Args:
            base_url: URL base do proxy REST (ex: http://localhost:3002/api/db)
            api_key: Chave enviada como Bearer token (opcional)
            timeout: Timeout em milissegundos
        """
        self.base_url = (base_url or active_config.DATABASE_REST_URL).rstrip('/')
        self.api_key = api_key if api_key is not None else active_config.DATABASE_REST_API_KEY
        self.timeout = timeout if timeout is not None else active_config.DATABASE_REST_TIMEOUT

        self.session = requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        if self.api_key:
            self.session.headers['Authorization'] = f'Bearer {self.api_key}'

        logger.info("Cliente REST do banco inicializado")

    @staticmethod
    def _eq_filters(where: Optional[Dict[str, Any]]) -> List[tuple]:
        """Converte {'coluna': valor} em filtros coluna=eq.valor"""
        if not where:
            return []
        return [(key, f'eq.{value}') for key, value in where.items()]

    @staticmethod
    def _returning(returning: Optional[List[str]]) -> List[tuple]:
        if returning:
            return [('select', ','.join(returning))]
        return []

    def _make_request(self, method: str, path: str, params: List[tuple] = None,
                      data: Any = None, headers: Dict = None, base_url: str = None) -> requests.Response:
        """
        Faz requisição para o proxy REST

        Levanta DatabaseRestError em erro HTTP ou de rede
        """
        url = f"{base_url or self.base_url}/{path.lstrip('/')}"
        timeout_seconds = self.timeout / 1000

        try:
            response = self.session.request(
                method,
                url,
                params=params or None,
                json=data,
                headers=headers,
                timeout=timeout_seconds
            )
        except requests.exceptions.Timeout as e:
            error_msg = f"Timeout na requisição {method} {url}: {e}"
            logger.error(error_msg)
            raise DatabaseRestError(error_msg) from e
        except requests.exceptions.ConnectionError as e:
            error_msg = f"Erro de conexão {method} {url}: {e}"
            logger.error(error_msg)
            raise DatabaseRestError(error_msg) from e
        except requests.exceptions.RequestException as e:
            error_msg = f"Erro na requisição {method} {url}: {e}"
            logger.error(error_msg)
            raise DatabaseRestError(error_msg) from e

        if response.status_code >= 400:
            error_message = f'HTTP {response.status_code}: {response.reason}'
            try:
                error_data = response.json()
                if isinstance(error_data, dict):
                    error_message = error_data.get('message') or error_data.get('error') or error_message
            except ValueError:
                pass
            logger.error(f"Erro na requisição {method} {url}: {error_message}")
            logger.error(f"Response: {response.text}")
            raise DatabaseRestError(error_message, status_code=response.status_code, body=response.text)

        return response

    @staticmethod
    def _json(response: requests.Response, default: Any = None) -> Any:
        if not response.content:
            return default
        try:
            return response.json()
        except ValueError:
            logger.warning(f"Resposta não-JSON do proxy REST: {response.text}")
            return default

    def execute_sql(self, sql: str, params: List[Any] = None) -> QueryResult:
        """Executa uma query SQL raw via REST"""
        logger.debug(f"Executando SQL via REST: {sql}")
        try:
            response = self._make_request('POST', '/sql', data={'sql': sql, 'params': params or []})
        except DatabaseRestError:
            logger.error("Erro executando SQL via REST")
            raise

        data = self._json(response, {}) or {}
        return QueryResult(
            rows=data.get('rows') or [],
            row_count=data.get('rowCount') or 0,
            command=data.get('command') or 'UNKNOWN'
        )

    def select(self, table: str, columns: List[str] = None, where: Dict[str, Any] = None,
               order_by: str = None, limit: int = None, offset: int = None) -> List[Dict]:
        """Seleciona dados de uma tabela"""
        params = []
        if columns:
            params.append(('select', ','.join(columns)))
        params.extend(self._eq_filters(where))
        if order_by:
            params.append(('order', order_by))
        if limit:
            params.append(('limit', str(limit)))
        if offset:
            params.append(('offset', str(offset)))

        try:
            response = self._make_request('GET', f'/{table}', params=params)
        except DatabaseRestError:
            logger.error(f"Erro selecionando de {table}")
            raise
        return self._json(response, []) or []

    def insert(self, table: str, data: Dict[str, Any], returning: List[str] = None) -> List[Dict]:
        """Insere dados em uma tabela"""
        try:
            response = self._make_request(
                'POST', f'/{table}',
                params=self._returning(returning),
                data=data,
                headers={'Prefer': 'return=representation'}
            )
        except DatabaseRestError:
            logger.error(f"Erro inserindo em {table}")
            raise
        return self._json(response, []) or []

    def update(self, table: str, data: Dict[str, Any], where: Dict[str, Any],
               returning: List[str] = None) -> List[Dict]:
        """Atualiza dados em uma tabela"""
        params = self._returning(returning) + self._eq_filters(where)
        try:
            response = self._make_request(
                'PATCH', f'/{table}',
                params=params,
                data=data,
                headers={'Prefer': 'return=representation'}
            )
        except DatabaseRestError:
            logger.error(f"Erro atualizando {table}")
            raise
        return self._json(response, []) or []

    def delete(self, table: str, where: Dict[str, Any], returning: List[str] = None) -> List[Dict]:
        """Deleta dados de uma tabela"""
        params = self._returning(returning) + self._eq_filters(where)
        try:
            response = self._make_request(
                'DELETE', f'/{table}',
                params=params,
                headers={'Prefer': 'return=representation'}
            )
        except DatabaseRestError:
            logger.error(f"Erro deletando de {table}")
            raise
        return self._json(response, []) or []

    def test_connection(self) -> bool:
        """Testa a conexão com a API REST (nunca levanta exceção)"""
        health_base = self.base_url.replace('/api/db', '')
        try:
            response = self._make_request('GET', '/health', base_url=health_base)
        except DatabaseRestError as e:
            logger.error(f"Teste de conexão com a API REST falhou: {e}")
            return False

        logger.info("Teste de conexão com a API REST bem-sucedido")
        return response.status_code == 200

    def close(self):
        """Fecha a sessão HTTP"""
        self.session.close()
        logger.info("Cliente REST do banco fechado")


# Instância global criada sob demanda
_default_client: Optional[DatabaseRestClient] = None


def get_db_rest() -> DatabaseRestClient:
    global _default_client
    if _default_client is None:
        _default_client = DatabaseRestClient()
    return _default_client


def execute_sql(sql: str, params: List[Any] = None) -> List[Dict]:
    """Atalho que retorna apenas as linhas do resultado"""
    return get_db_rest().execute_sql(sql, params).rows


def test_connection() -> bool:
    return get_db_rest().test_connection()
