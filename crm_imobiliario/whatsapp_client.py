"""
Rotas do WhatsApp expostas pelo servidor do CRM
"""
import logging
import time
from typing import Any, Dict, List, Optional

from crm_imobiliario.api_client import CRMApiClient
from crm_imobiliario.config import active_config
from crm_imobiliario.formatters import normalize_instance_name
from crm_imobiliario.schemas import EVOLUTION_STATUS_MAPPING, WhatsappInstance, parse_list

logger = logging.getLogger(__name__)


def is_connected_status(status: Optional[str]) -> bool:
    """Verifica se o estado informado pela API indica instância conectada"""
    return status in active_config.WHATSAPP_CONNECTED_STATES


def map_instance_status(status: Optional[str]) -> Optional[str]:
    """Converte o estado da API do WhatsApp para o status usado no CRM"""
    if status is None:
        return None
    return EVOLUTION_STATUS_MAPPING.get(status.lower(), status)


def _cache_buster() -> int:
    return int(time.time() * 1000)


class WhatsAppClient:
    def __init__(self, api: CRMApiClient):
        self.api = api

    # ========== INSTÂNCIAS ==========

    def get_instances(self) -> List[WhatsappInstance]:
        return parse_list(WhatsappInstance, self.api.request('GET', '/api/whatsapp/instances'))

    def get_instance(self, instance_id: str) -> WhatsappInstance:
        data = self.api.request('GET', f'/api/whatsapp/instances/{instance_id}')
        return WhatsappInstance.model_validate(data)

    def create_instance(self, user_id: int, full_name: str = None, instance_name: str = None) -> Dict:
        """Cria instância; sem nome explícito usa o primeiro nome do usuário normalizado"""
        name = instance_name or normalize_instance_name(full_name or '')
        if not name:
            raise ValueError("Informe o nome da instância ou o nome do usuário")
        logger.info(f"Criando instância do WhatsApp '{name}' para usuário {user_id}")
        return self.api.request('POST', '/api/whatsapp/instances', {'instanceName': name, 'userId': user_id})

    def delete_instance(self, instance_id: str):
        return self.api.request('DELETE', f'/api/whatsapp/instances/{instance_id}')

    def connect(self, instance_id: str) -> Dict:
        return self.api.request('POST', f'/api/whatsapp/connect/{instance_id}')

    def disconnect(self, instance_id: str) -> Dict:
        return self.api.request('POST', f'/api/whatsapp/disconnect/{instance_id}')

    def get_qrcode(self, instance_name: str) -> Dict:
        return self.api.request('GET', f'/api/whatsapp/qrcode/{instance_name}')

    def get_instance_status(self, instance_name: str) -> Dict:
        return self.api.request('GET', f'/api/whatsapp/status/{instance_name}')

    def force_check_status(self, timeout: float = None) -> Dict:
        """Força a verificação do estado da conexão direto na API do WhatsApp"""
        if timeout is None:
            timeout = active_config.WHATSAPP_RECONNECT_TIMEOUT
        return self.api.request(
            'POST', '/api/whatsapp/force-check-status',
            params={'t': _cache_buster()},
            timeout=timeout
        ) or {}

    # ========== NÚMEROS E FOTOS ==========

    def check_numbers(self, full: bool = True) -> Dict:
        """Verifica quais clientes têm WhatsApp (lote único)"""
        params = {'_timestamp': _cache_buster()}
        if full:
            params['full'] = 'true'
        return self.api.request('GET', '/api/whatsapp/check-numbers', params=params)

    def fetch_client_profile_picture(self, cliente_id: int, phone_number: str) -> Dict:
        return self.api.request('POST', '/api/whatsapp/fetch-client-profile-picture', {
            'clienteId': cliente_id,
            'phoneNumber': phone_number,
        })

    def get_profile_picture_logs(self) -> List[Dict[str, Any]]:
        return self.api.request('GET', '/api/whatsapp/logs/profile-pics') or []

    def send_message(self, instance_id: str, phone_number: str, message: str) -> Dict:
        logger.info(f"Enviando mensagem para {phone_number}")
        return self.api.request('POST', '/api/whatsapp/send-message', {
            'instanceId': instance_id,
            'phoneNumber': phone_number,
            'message': message,
        })
