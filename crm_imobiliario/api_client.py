"""
Cliente para a API HTTP do CRM (rotas /api/...)
Equivalente ao apiRequest + função de consulta padrão da interface
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from crm_imobiliario.config import active_config
from crm_imobiliario.errors import ApiRequestError
from crm_imobiliario.schemas import (
    Appointment, Cliente, ClienteNote, Sale, User, Visit, parse_list
)

logger = logging.getLogger(__name__)

ON_401_THROW = 'throw'
ON_401_RETURN_NULL = 'return_null'


def build_query_url(query_key) -> Tuple[str, Dict[str, Any]]:
    """
    Monta URL e parâmetros a partir de uma chave de consulta

    key[0] é o caminho; key[1] string vira ?period=; key[1] dicionário vira
    parâmetros de query (valores vazios são ignorados)
    """
    if isinstance(query_key, str):
        query_key = (query_key,)

    url = query_key[0]
    params: Dict[str, Any] = {}

    if len(query_key) > 1 and query_key[1]:
        extra = query_key[1]
        if isinstance(extra, str):
            params['period'] = extra
        elif isinstance(extra, dict):
            params = {key: value for key, value in extra.items() if value}

    return url, params


class CRMApiClient:
    def __init__(self, base_url: str = None, access_token: str = None, timeout: int = None):
        """
        Args:
            base_url: URL do servidor do CRM (ex: http://localhost:5000)
            access_token: Token JWT enviado como Bearer
            timeout: Timeout em milissegundos
        """
        self.base_url = (base_url if base_url is not None else active_config.CRM_API_URL).rstrip('/')
        self.access_token = access_token if access_token is not None else active_config.CRM_ACCESS_TOKEN
        self.timeout = timeout if timeout is not None else active_config.CRM_API_TIMEOUT
        self.session = requests.Session()

    def _url(self, path: str) -> str:
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, has_body: bool, extra: Dict[str, str] = None) -> Dict[str, str]:
        headers = {}
        if has_body:
            headers['Content-Type'] = 'application/json'
        if self.access_token:
            headers['Authorization'] = f'Bearer {self.access_token}'
        if extra:
            headers.update(extra)
        return headers

    def _make_request(self, method: str, path: str, body: Any = None, params: Dict = None,
                      headers: Dict[str, str] = None, timeout: float = None) -> requests.Response:
        """
        Faz a requisição HTTP

        Levanta ApiRequestError("<status>: <texto>") em respostas não-2xx
        e em falhas de rede
        """
        url = self._url(path)
        timeout_seconds = timeout if timeout is not None else self.timeout / 1000

        try:
            response = self.session.request(
                method,
                url,
                json=body,
                params=params or None,
                headers=self._headers(body is not None, headers),
                timeout=timeout_seconds
            )
        except requests.exceptions.Timeout as e:
            error_msg = f"Timeout na requisição {method} {url}: {e}"
            logger.error(error_msg)
            raise ApiRequestError(error_msg) from e
        except requests.exceptions.ConnectionError as e:
            error_msg = f"Erro de conexão {method} {url}: {e}"
            logger.error(error_msg)
            raise ApiRequestError(error_msg) from e
        except requests.exceptions.RequestException as e:
            error_msg = f"Erro na requisição {method} {url}: {e}"
            logger.error(error_msg)
            raise ApiRequestError(error_msg) from e

        if not response.ok:
            text = response.text or response.reason
            error_message = f"{response.status_code}: {text}"
            logger.error(f"Erro na requisição {method} {url}: {error_message}")
            raise ApiRequestError(error_message, status_code=response.status_code, body=response.text)

        return response

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        """JSON decodificado quando a resposta é JSON; senão a própria resposta"""
        content_type = response.headers.get('content-type', '')
        if 'application/json' in content_type:
            if not response.content:
                return None
            return response.json()
        return response

    def request(self, method: str, url: str, body: Any = None, headers: Dict[str, str] = None,
                params: Dict = None, timeout: float = None) -> Any:
        """Requisição genérica para a API (mutações e chamadas avulsas)"""
        response = self._make_request(method, url, body=body, params=params, headers=headers, timeout=timeout)
        return self._decode(response)

    def query(self, query_key, on_401: str = ON_401_THROW) -> Any:
        """Consulta GET a partir de uma chave de consulta"""
        url, params = build_query_url(query_key)
        try:
            response = self._make_request('GET', url, params=params)
        except ApiRequestError as e:
            if on_401 == ON_401_RETURN_NULL and e.is_unauthorized:
                return None
            raise

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiRequestError(f"{response.status_code}: resposta não-JSON em {url}",
                                  status_code=response.status_code, body=response.text) from e

    def test_connection(self) -> bool:
        """Testa a conexão com o servidor do CRM"""
        try:
            self._make_request('GET', '/api/health')
            logger.info("Conexão com a API do CRM estabelecida com sucesso")
            return True
        except ApiRequestError as e:
            logger.error(f"Erro ao testar conexão com a API do CRM: {e}")
            return False

    def close(self):
        self.session.close()

    # ========== CLIENTES ==========

    def get_clientes(self, **filters) -> List[Cliente]:
        """
        Lista clientes

        Filtros aceitos pela API: status, assignedTo, brokerId, dualSearch,
        period, search, order, page, pageSize
        """
        data = self.query(('/api/clientes', filters))
        if isinstance(data, dict):
            data = data.get('data') or []
        return parse_list(Cliente, data)

    def get_all_clientes(self) -> List[Cliente]:
        return parse_list(Cliente, self.query(('/api/clientes/all',)))

    def get_cliente(self, cliente_id: int) -> Cliente:
        return Cliente.model_validate(self.query((f'/api/clientes/{cliente_id}',)))

    def create_cliente(self, payload: Dict[str, Any]) -> Dict:
        return self.request('POST', '/api/clientes', payload)

    def update_cliente(self, cliente_id: int, payload: Dict[str, Any]) -> Dict:
        return self.request('PATCH', f'/api/clientes/{cliente_id}', payload)

    def delete_cliente(self, cliente_id: int):
        return self.request('DELETE', f'/api/clientes/{cliente_id}')

    # ========== ANOTAÇÕES ==========

    def get_cliente_notes(self, cliente_id: int) -> List[ClienteNote]:
        return parse_list(ClienteNote, self.query((f'/api/clientes/{cliente_id}/notes',)))

    def get_cliente_note(self, note_id: int) -> ClienteNote:
        return ClienteNote.model_validate(self.query((f'/api/clientes/notes/{note_id}',)))

    def create_cliente_note(self, cliente_id: int, payload: Dict[str, Any]) -> Dict:
        return self.request('POST', f'/api/clientes/{cliente_id}/notes', payload)

    def update_cliente_note(self, note_id: int, payload: Dict[str, Any]) -> Dict:
        return self.request('PATCH', f'/api/clientes/notes/{note_id}', payload)

    def delete_cliente_note(self, note_id: int):
        return self.request('DELETE', f'/api/clientes/notes/{note_id}')

    # ========== AGENDAMENTOS ==========

    def get_appointments(self, cliente_id: int = None, **filters) -> List[Appointment]:
        params = dict(filters)
        if cliente_id:
            params['clienteId'] = cliente_id
        return parse_list(Appointment, self.query(('/api/appointments', params)))

    def get_appointment(self, appointment_id: int) -> Appointment:
        return Appointment.model_validate(self.query((f'/api/appointments/{appointment_id}',)))

    def create_appointment(self, payload: Dict[str, Any]) -> Dict:
        return self.request('POST', '/api/appointments', payload)

    def replace_appointment(self, appointment_id: int, payload: Dict[str, Any]) -> Dict:
        return self.request('PUT', f'/api/appointments/{appointment_id}', payload)

    def update_appointment(self, appointment_id: int, payload: Dict[str, Any]) -> Dict:
        return self.request('PATCH', f'/api/appointments/{appointment_id}', payload)

    def delete_appointment(self, appointment_id: int):
        return self.request('DELETE', f'/api/appointments/{appointment_id}')

    # ========== VISITAS ==========

    def get_visits(self, cliente_id: int = None, **filters) -> List[Visit]:
        params = dict(filters)
        if cliente_id:
            params['clienteId'] = cliente_id
        return parse_list(Visit, self.query(('/api/visits', params)))

    def get_visit(self, visit_id: int) -> Visit:
        return Visit.model_validate(self.query((f'/api/visits/{visit_id}',)))

    def create_visit(self, payload: Dict[str, Any]) -> Dict:
        return self.request('POST', '/api/visits', payload)

    def update_visit(self, visit_id: int, payload: Dict[str, Any]) -> Dict:
        return self.request('PATCH', f'/api/visits/{visit_id}', payload)

    def delete_visit(self, visit_id: int):
        return self.request('DELETE', f'/api/visits/{visit_id}')

    # ========== VENDAS ==========

    def get_sales(self, cliente_id: int = None, **filters) -> List[Sale]:
        params = dict(filters)
        if cliente_id:
            params['clienteId'] = cliente_id
        return parse_list(Sale, self.query(('/api/sales', params)))

    def get_sale(self, sale_id: int) -> Sale:
        return Sale.model_validate(self.query((f'/api/sales/{sale_id}',)))

    def create_sale(self, payload: Dict[str, Any]) -> Dict:
        return self.request('POST', '/api/sales', payload)

    def update_sale(self, sale_id: int, payload: Dict[str, Any]) -> Dict:
        return self.request('PATCH', f'/api/sales/{sale_id}', payload)

    def delete_sale(self, sale_id: int):
        return self.request('DELETE', f'/api/sales/{sale_id}')

    # ========== USUÁRIOS ==========

    def get_users(self) -> List[User]:
        return parse_list(User, self.query(('/api/users',)))

    def get_user(self, user_id: int) -> User:
        return User.model_validate(self.query((f'/api/users/{user_id}',)))

    def get_users_performance(self, period: str = None) -> List[Dict]:
        return self.query(('/api/users/performance', period)) or []

    # ========== DASHBOARD ==========

    def get_dashboard_metrics(self, period: str = 'month', user_id: Optional[int] = None) -> Dict:
        return self.query(('/api/dashboard/metrics', {'period': period, 'userId': user_id})) or {}

    def get_recent_clientes(self, limit: int = 5, assigned_to: Optional[int] = None) -> List[Cliente]:
        data = self.query(('/api/dashboard/recent-clientes', {'limit': limit, 'assignedTo': assigned_to}))
        return parse_list(Cliente, data)

    def get_upcoming_appointments(self, limit: int = 5, user_id: Optional[int] = None) -> List[Appointment]:
        data = self.query(('/api/dashboard/upcoming-appointments', {'limit': limit, 'userId': user_id}))
        return parse_list(Appointment, data)
