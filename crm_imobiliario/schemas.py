"""
Modelos de dados do CRM (clientes, agendamentos, visitas, vendas, anotações,
usuários e instâncias do WhatsApp)

Os campos usam snake_case no Python e camelCase no JSON da API.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ClienteStatus:
    SEM_ATENDIMENTO = "Sem Atendimento"
    NAO_RESPONDEU = "Não Respondeu"
    EM_ATENDIMENTO = "Em Atendimento"
    AGENDAMENTO = "Agendamento"
    VISITA = "Visita"
    VENDA = "Venda"

    # Ordem das colunas do funil (kanban)
    ALL = [SEM_ATENDIMENTO, NAO_RESPONDEU, EM_ATENDIMENTO, AGENDAMENTO, VISITA, VENDA]


class ClienteSource:
    FACEBOOK = "Facebook"
    FACEBOOK_ADS = "Facebook Ads"
    SITE = "Site"
    INDICACAO = "Indicação"
    WHATSAPP = "WhatsApp"
    LIGACAO = "Ligação"
    INSTAGRAM = "Instagram"
    PORTAIS = "Portais"
    GOOGLE = "Google"
    OUTRO = "Outro"

    ALL = [FACEBOOK, FACEBOOK_ADS, SITE, INDICACAO, WHATSAPP, LIGACAO, INSTAGRAM, PORTAIS, GOOGLE, OUTRO]


class MeioContato:
    WHATSAPP = "WhatsApp"
    EMAIL = "Email"
    TELEFONE = "Telefone"
    PRESENCIAL = "Presencial"

    ALL = [WHATSAPP, EMAIL, TELEFONE, PRESENCIAL]


class UserRole:
    MANAGER = "Gestor"
    MARKETING = "Marketing"
    CONSULTANT = "Consultor de Atendimento"
    BROKER_SENIOR = "Corretor Senior"
    EXECUTIVE = "Executivo"
    BROKER_JUNIOR = "Corretor Junior"
    BROKER_TRAINEE = "Corretor Trainee"

    BROKERS = [BROKER_SENIOR, BROKER_JUNIOR, BROKER_TRAINEE, EXECUTIVE]


class UserDepartment:
    GESTAO = "Gestão"
    MARKETING = "Marketing"
    VENDAS = "Vendas"
    ATENDIMENTO = "Central de Atendimento"


class AppointmentType:
    VISITA = "Visita"
    REUNIAO = "Reunião"
    ATENDIMENTO = "Atendimento"
    LIGACAO = "Ligação"
    VIDEO_CHAMADA = "Vídeo Chamada"

    ALL = [VISITA, REUNIAO, ATENDIMENTO, LIGACAO, VIDEO_CHAMADA]


class AppointmentStatus:
    AGENDADO = "Agendado"
    CONFIRMADO = "Confirmado"
    EM_ANDAMENTO = "Em Andamento"
    CONCLUIDO = "Concluído"
    CANCELADO = "Cancelado"
    NAO_COMPARECEU = "Não Compareceu"
    REAGENDADO = "Reagendado"

    ALL = [AGENDADO, CONFIRMADO, EM_ANDAMENTO, CONCLUIDO, CANCELADO, NAO_COMPARECEU, REAGENDADO]


class PropertyType:
    APARTAMENTO = "Apto"
    CASA = "Casa"
    LOTE = "Lote"

    ALL = [APARTAMENTO, CASA, LOTE]


class PaymentMethod:
    A_VISTA = "À vista"
    FINANCIAMENTO_BANCARIO = "Financiamento Bancário"
    FINANCIAMENTO_CONSTRUTORA = "Financiamento Construtora"

    ALL = [A_VISTA, FINANCIAMENTO_BANCARIO, FINANCIAMENTO_CONSTRUTORA]


class WhatsAppInstanceStatus:
    CONNECTED = "Conectado"
    DISCONNECTED = "Desconectado"
    CONNECTING = "Conectando"
    CREATING = "Criando"
    DISCONNECTING = "Desconectando"
    WAITING_QR_SCAN = "Aguardando Scan do QR Code"
    FAILED = "Falha"
    PENDING = "Pendente"
    ERROR = "Erro"


# Mapeamento de status da Evolution API para o sistema
EVOLUTION_STATUS_MAPPING: Dict[str, str] = {
    "open": WhatsAppInstanceStatus.CONNECTED,
    "connected": WhatsAppInstanceStatus.CONNECTED,
    "close": WhatsAppInstanceStatus.DISCONNECTED,
    "disconnected": WhatsAppInstanceStatus.DISCONNECTED,
    "connecting": WhatsAppInstanceStatus.CONNECTING,
}

# Temperatura da visita (1-5)
VISIT_TEMPERATURE_LABELS: Dict[int, str] = {
    1: "Muito Frio",
    2: "Frio",
    3: "Morno",
    4: "Quente",
    5: "Muito Quente",
}

Timestamp = Union[datetime, str]


def _parse_timestamp(value: Any) -> Any:
    """Aceita datetime ou string ISO (enviada como veio); rejeita strings que não são datas"""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            raise ValueError("Data inválida")
        return value
    raise ValueError("Data inválida")


class CRMModel(BaseModel):
    """Base dos modelos: aliases camelCase e serialização para a API"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )

    def to_payload(self, exclude_none: bool = True) -> Dict[str, Any]:
        """Dicionário pronto para enviar como JSON"""
        return self.model_dump(mode='json', by_alias=True, exclude_none=exclude_none)


# ========== ENTIDADES ==========

class User(CRMModel):
    id: int
    username: str
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str
    department: str
    is_active: Optional[bool] = True
    whatsapp_instance: Optional[str] = None
    whatsapp_connected: Optional[bool] = False

    @property
    def is_consultant(self) -> bool:
        return self.role == UserRole.CONSULTANT

    @property
    def is_broker(self) -> bool:
        return self.department == UserDepartment.VENDAS and self.role in UserRole.BROKERS


class Cliente(CRMModel):
    id: int
    full_name: str
    email: Optional[str] = None
    phone: str
    source: Optional[str] = None
    source_details: Optional[Any] = None
    preferred_contact: Optional[str] = None
    cpf: Optional[str] = None
    assigned_to: Optional[int] = None
    broker_id: Optional[int] = None
    status: Optional[str] = ClienteStatus.SEM_ATENDIMENTO
    has_whatsapp: Optional[bool] = None
    whatsapp_jid: Optional[str] = None
    profile_pic_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Appointment(CRMModel):
    id: int
    cliente_id: Optional[int] = None
    user_id: Optional[int] = None
    broker_id: Optional[int] = None
    assigned_to: Optional[int] = None
    title: Optional[str] = None
    type: str
    status: str
    notes: Optional[str] = None
    scheduled_at: datetime
    location: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Visit(CRMModel):
    id: int
    cliente_id: Optional[int] = None
    user_id: Optional[int] = None
    broker_id: Optional[int] = None
    assigned_to: Optional[int] = None
    property_id: str
    visited_at: datetime
    notes: Optional[str] = None
    temperature: Optional[int] = None
    visit_description: Optional[str] = None
    next_steps: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Sale(CRMModel):
    id: int
    cliente_id: Optional[int] = None
    user_id: Optional[int] = None
    consultant_id: Optional[int] = None
    assigned_to: Optional[int] = None
    broker_id: Optional[int] = None
    value: Decimal
    sold_at: datetime
    notes: Optional[str] = None
    cpf: Optional[str] = None
    property_type: Optional[str] = None
    builder_name: Optional[str] = None
    development_name: Optional[str] = None
    block: Optional[str] = None
    unit: Optional[str] = None
    payment_method: Optional[str] = None
    commission: Optional[Decimal] = None
    bonus: Optional[Decimal] = None
    total_commission: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ClienteNote(CRMModel):
    id: int
    cliente_id: Optional[int] = None
    user_id: Optional[int] = None
    text: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WhatsappInstance(CRMModel):
    instancia_id: str
    instance_name: str
    user_id: int
    instance_status: Optional[str] = None
    base64: Optional[str] = None
    webhook: Optional[str] = None
    remote_jid: Optional[str] = None
    last_connection: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_connected(self) -> bool:
        status = (self.instance_status or '').lower()
        return status in ('connected', 'conectado', 'open')


# ========== PAYLOADS DE INSERÇÃO / ATUALIZAÇÃO ==========

class ClienteCreate(CRMModel):
    full_name: str
    email: Optional[str] = None
    phone: str
    source: Optional[str] = None
    source_details: Optional[Any] = None
    preferred_contact: Optional[str] = None
    cpf: Optional[str] = None
    assigned_to: Optional[int] = None
    broker_id: Optional[int] = None
    status: Optional[str] = ClienteStatus.SEM_ATENDIMENTO
    has_whatsapp: Optional[bool] = None
    whatsapp_jid: Optional[str] = None
    profile_pic_url: Optional[str] = None

    @field_validator('status')
    @classmethod
    def status_valido(cls, value):
        if value is not None and value not in ClienteStatus.ALL:
            raise ValueError(f"Status inválido: {value}")
        return value


class ClienteUpdate(ClienteCreate):
    """Atualização parcial: todos os campos opcionais"""
    full_name: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None


class AppointmentCreate(CRMModel):
    cliente_id: Optional[int] = None
    user_id: Optional[int] = None
    broker_id: Optional[int] = None
    assigned_to: Optional[int] = None
    title: Optional[str] = None
    type: str = AppointmentType.VISITA
    status: str = AppointmentStatus.AGENDADO
    notes: Optional[str] = None
    scheduled_at: Timestamp
    location: Optional[str] = None
    address: Optional[str] = None

    @field_validator('type')
    @classmethod
    def tipo_valido(cls, value):
        if value not in AppointmentType.ALL:
            raise ValueError(f"Tipo de agendamento inválido: {value}")
        return value

    @field_validator('status')
    @classmethod
    def status_valido(cls, value):
        if value not in AppointmentStatus.ALL:
            raise ValueError(f"Status de agendamento inválido: {value}")
        return value

    @field_validator('scheduled_at', mode='before')
    @classmethod
    def parse_scheduled_at(cls, value):
        return _parse_timestamp(value)


class VisitCreate(CRMModel):
    cliente_id: Optional[int] = None
    user_id: Optional[int] = None
    broker_id: Optional[int] = None
    assigned_to: Optional[int] = None
    property_id: str
    visited_at: Timestamp
    notes: Optional[str] = None
    temperature: Optional[int] = Field(None, ge=1, le=5)
    visit_description: Optional[str] = None
    next_steps: Optional[str] = None

    @field_validator('visited_at', mode='before')
    @classmethod
    def parse_visited_at(cls, value):
        return _parse_timestamp(value)


class SaleCreate(CRMModel):
    cliente_id: Optional[int] = None
    user_id: Optional[int] = None
    consultant_id: Optional[int] = None
    assigned_to: Optional[int] = None
    broker_id: Optional[int] = None
    value: Decimal
    sold_at: Timestamp
    notes: Optional[str] = None
    cpf: Optional[str] = None
    property_type: Optional[str] = None
    builder_name: Optional[str] = None
    development_name: Optional[str] = None
    block: Optional[str] = None
    unit: Optional[str] = None
    payment_method: Optional[str] = None
    commission: Optional[Decimal] = None
    bonus: Optional[Decimal] = None
    # Enviada já formatada em reais (R$ 11.500,00)
    total_commission: Optional[str] = None

    @field_validator('sold_at', mode='before')
    @classmethod
    def parse_sold_at(cls, value):
        return _parse_timestamp(value)


class ClienteNoteCreate(CRMModel):
    cliente_id: int
    user_id: int
    text: str = Field(..., min_length=1)


def parse_list(model, items: Optional[List[Dict[str, Any]]]) -> list:
    """Converte lista de dicionários da API em modelos"""
    return [model.model_validate(item) for item in (items or [])]
