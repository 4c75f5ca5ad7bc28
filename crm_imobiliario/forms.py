"""
Formulários de criação, edição e exclusão (clientes, agendamentos, visitas,
vendas e anotações)

Cada formulário valida os valores antes de qualquer requisição, envia os
dados para a API, invalida as consultas afetadas no cache e emite uma
notificação de sucesso ou erro.
"""
import datetime
import logging
import threading
import time as time_module
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from crm_imobiliario.api_client import CRMApiClient
from crm_imobiliario.errors import ApiRequestError, FormValidationError
from crm_imobiliario.formatters import brazil_form_date_to_utc, format_currency, parse_currency
from crm_imobiliario.notifications import Notification, Notifier
from crm_imobiliario.query_cache import QueryCache
from crm_imobiliario.schemas import (
    VISIT_TEMPERATURE_LABELS, AppointmentCreate, AppointmentStatus, AppointmentType, ClienteNoteCreate,
    ClienteSource, ClienteStatus, ClienteUpdate, MeioContato, PaymentMethod, PropertyType, Sale, SaleCreate,
    User, VisitCreate
)

logger = logging.getLogger(__name__)

HORARIO_REGEX = r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$'


@dataclass
class SubmitResult:
    success: bool
    data: Any = None
    errors: Dict[str, List[str]] = field(default_factory=dict)
    notification: Optional[Notification] = None


# ========== SCHEMAS DOS FORMULÁRIOS ==========

class FormSchema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='ignore',
    )


class ClienteForm(FormSchema):
    full_name: str = Field(..., min_length=3)
    phone: str = Field(..., min_length=8)
    email: Optional[str] = ''
    source: str = ClienteSource.SITE
    status: str = ClienteStatus.SEM_ATENDIMENTO
    assigned_to: int
    broker_id: Optional[int] = None
    preferred_contact: Optional[str] = None

    @field_validator('email')
    @classmethod
    def email_valido(cls, value):
        if value and '@' not in value:
            raise ValueError("Email inválido")
        return value or ''

    @field_validator('status')
    @classmethod
    def status_valido(cls, value):
        if value not in ClienteStatus.ALL:
            raise ValueError(f"Status inválido: {value}")
        return value

    @field_validator('preferred_contact')
    @classmethod
    def contato_valido(cls, value):
        if value and value not in MeioContato.ALL:
            raise ValueError(f"Meio de contato inválido: {value}")
        return value or None


def _appointment_choice(value: str, choices: List[str]) -> str:
    if value not in choices:
        raise ValueError(f"Opção inválida: {value}")
    return value


class AgendamentoFormSchema(FormSchema):
    date: datetime.date
    time: str = Field(..., min_length=5, pattern=HORARIO_REGEX)
    location: str = Field(..., min_length=3)
    address: str = Field(..., min_length=3)
    description: Optional[str] = None
    type: str
    status: str
    consultant_id: int
    broker_id: int
    title: Optional[str] = None

    @field_validator('type')
    @classmethod
    def tipo_valido(cls, value):
        return _appointment_choice(value, AppointmentType.ALL)

    @field_validator('status')
    @classmethod
    def status_valido(cls, value):
        return _appointment_choice(value, AppointmentStatus.ALL)


class AppointmentEditFormSchema(FormSchema):
    type: str
    status: str
    location: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None
    date: datetime.date
    time: str = Field(..., pattern=HORARIO_REGEX)
    consultant_id: Optional[int] = None
    broker_id: Optional[int] = None

    @field_validator('type')
    @classmethod
    def tipo_valido(cls, value):
        return _appointment_choice(value, AppointmentType.ALL)

    @field_validator('status')
    @classmethod
    def status_valido(cls, value):
        return _appointment_choice(value, AppointmentStatus.ALL)


class VisitaFormSchema(FormSchema):
    date: datetime.date
    time: str = Field(..., min_length=5, pattern=HORARIO_REGEX)
    temperature: str
    visit_result: str = Field(..., min_length=3)
    next_steps: str = Field(..., min_length=3)

    @field_validator('temperature', mode='before')
    @classmethod
    def temperatura_valida(cls, value):
        value = str(value) if value is not None else ''
        if value not in ('1', '2', '3', '4', '5'):
            raise ValueError("Temperatura deve ser de 1 a 5")
        return value


class VisitEditFormSchema(FormSchema):
    notes: Optional[str] = None
    temperature: Optional[str] = None
    result: Optional[str] = None
    next_steps: Optional[str] = None
    visit_date: Optional[datetime.date] = None
    visit_time: Optional[str] = Field(None, pattern=HORARIO_REGEX)

    @field_validator('temperature', mode='before')
    @classmethod
    def temperatura_valida(cls, value):
        if value is None or value == '':
            return None
        value = str(value)
        if value not in ('1', '2', '3', '4', '5'):
            raise ValueError("Temperatura deve ser de 1 a 5")
        return value


class VendaFormSchema(FormSchema):
    date: datetime.date
    cpf: str = Field(..., min_length=11)
    consultant_id: int
    broker_id: int
    property_type: str
    sale_value: str = Field(..., min_length=1)
    payment_method: str
    commission: str = Field(..., min_length=1)
    bonus: Optional[str] = None
    notes: Optional[str] = None
    builder_name: Optional[str] = None
    development_name: Optional[str] = None
    block: Optional[str] = None
    unit: Optional[str] = None
    seller_name: Optional[str] = None

    @field_validator('property_type')
    @classmethod
    def tipo_valido(cls, value):
        if value not in PropertyType.ALL:
            raise ValueError(f"Tipo de imóvel inválido: {value}")
        return value

    @field_validator('payment_method')
    @classmethod
    def pagamento_valido(cls, value):
        if value not in PaymentMethod.ALL:
            raise ValueError(f"Forma de pagamento inválida: {value}")
        return value

    @model_validator(mode='after')
    def campos_do_imovel(self):
        if self.property_type == PropertyType.APARTAMENTO:
            if not (self.builder_name and self.block and self.unit):
                raise ValueError("Por favor, preencha todos os campos obrigatórios para este tipo de imóvel")
        elif self.property_type == PropertyType.CASA:
            if not self.seller_name:
                raise ValueError("Por favor, preencha todos os campos obrigatórios para este tipo de imóvel")
        return self

    @property
    def total_commission(self):
        return parse_currency(self.commission) + parse_currency(self.bonus or '0')


class NoteFormSchema(FormSchema):
    text: str = Field(..., min_length=3)


class StatusChangeSchema(FormSchema):
    status: str

    @field_validator('status')
    @classmethod
    def status_valido(cls, value):
        if value not in ClienteStatus.ALL:
            raise ValueError(f"Status inválido: {value}")
        return value


# ========== BASE ==========

def _error_message(error: Dict[str, Any]) -> str:
    """Mensagem do ValueError levantado no validator, sem o prefixo do pydantic"""
    original = (error.get('ctx') or {}).get('error')
    if isinstance(original, ValueError):
        return str(original)
    return error.get('msg', 'Valor inválido')


class FormDialog:
    """
    Base dos formulários

    Subclasses definem schema, mensagens e perform(form) que faz as
    requisições e retorna os dados da resposta.
    """
    schema = None
    messages: Dict[str, str] = {}
    # Campo que recebe erros de validação do formulário inteiro
    root_error_field = 'form'

    success_title = ''
    success_description = ''
    error_title = 'Erro'
    error_description = 'Não foi possível concluir a operação. Tente novamente.'

    def __init__(self, api: CRMApiClient, cache: QueryCache, notifier: Notifier,
                 current_user_id: Optional[int] = None):
        self.api = api
        self.cache = cache
        self.notifier = notifier
        self.current_user_id = current_user_id
        self.is_submitting = False
        self._lock = threading.Lock()

    def _field_names(self) -> Dict[str, str]:
        # Erros do pydantic vêm com o alias camelCase do campo
        return {info.alias or name: name for name, info in self.schema.model_fields.items()}

    def validate(self, values: Dict[str, Any]):
        """Valida os valores; levanta FormValidationError sem tocar na rede"""
        try:
            return self.schema.model_validate(values or {})
        except ValidationError as e:
            errors: Dict[str, List[str]] = {}
            for error in e.errors():
                loc = error.get('loc') or ()
                if loc:
                    field_name = self._field_names().get(loc[0], str(loc[0]))
                    message = self.messages.get(field_name) or _error_message(error)
                else:
                    # Validação do formulário inteiro mantém a própria mensagem
                    field_name = self.root_error_field
                    message = _error_message(error)
                errors.setdefault(field_name, [])
                if message not in errors[field_name]:
                    errors[field_name].append(message)
            raise FormValidationError(errors) from e

    def invalidation_keys(self, form) -> List[tuple]:
        return []

    def perform(self, form) -> Any:
        raise NotImplementedError

    def _begin(self) -> bool:
        with self._lock:
            if self.is_submitting:
                return False
            self.is_submitting = True
            return True

    def _end(self):
        with self._lock:
            self.is_submitting = False

    def _execute(self, action: Callable[[], Any], keys: Iterable[tuple],
                 success: tuple, failure: tuple) -> SubmitResult:
        if not self._begin():
            logger.warning(f"{self.__class__.__name__}: envio já em andamento, ignorando")
            return SubmitResult(False, errors={self.root_error_field: ["Envio já em andamento"]})

        try:
            data = action()
        except ApiRequestError as e:
            logger.error(f"{self.__class__.__name__}: {e}")
            notification = self.notifier.error(*failure)
            return SubmitResult(False, errors={self.root_error_field: [str(e)]}, notification=notification)
        except ValidationError as e:
            # Payload recusado pelo modelo da API antes de qualquer requisição
            logger.error(f"{self.__class__.__name__}: payload inválido: {e}")
            notification = self.notifier.error(*failure)
            messages = [_error_message(error) for error in e.errors()]
            return SubmitResult(False, errors={self.root_error_field: messages}, notification=notification)
        finally:
            self._end()

        for key in keys:
            self.cache.invalidate(key)

        notification = self.notifier.success(*success)
        return SubmitResult(True, data=data, notification=notification)

    def submit(self, values: Dict[str, Any]) -> SubmitResult:
        try:
            form = self.validate(values)
        except FormValidationError as e:
            logger.info(f"{self.__class__.__name__}: {e}")
            return SubmitResult(False, errors=e.errors)

        return self._execute(
            lambda: self.perform(form),
            self.invalidation_keys(form),
            self.success_message(form),
            (self.error_title, self.error_description),
        )

    def success_message(self, form) -> tuple:
        return self.success_title, self.success_description


# ========== CLIENTES ==========

class CreateClienteForm(FormDialog):
    schema = ClienteForm
    messages = {
        'full_name': "Nome deve ter pelo menos 3 caracteres",
        'phone': "Telefone deve ter pelo menos 8 caracteres",
        'email': "Email inválido",
        'assigned_to': "Selecione um consultor de atendimento",
    }
    success_title = "Cliente criado"
    success_description = "O cliente foi criado com sucesso."
    error_title = "Erro ao criar cliente"
    error_description = "Não foi possível criar o cliente. Verifique os dados e tente novamente."

    def perform(self, form: ClienteForm):
        payload = form.model_dump(by_alias=True, exclude_none=True)
        return self.api.create_cliente(payload)

    def invalidation_keys(self, form):
        return [('/api/clientes',)]


class ClienteStatusChange(FormDialog):
    """Mudança de etapa do cliente no funil (arrastar no kanban)"""
    schema = StatusChangeSchema
    success_title = "Status atualizado"
    error_title = "Erro ao atualizar status"
    error_description = "Não foi possível mover o cliente. Tente novamente."

    def __init__(self, api, cache, notifier, cliente_id: int, current_user_id: Optional[int] = None):
        super().__init__(api, cache, notifier, current_user_id)
        self.cliente_id = cliente_id

    def perform(self, form: StatusChangeSchema):
        payload = ClienteUpdate(status=form.status).to_payload()
        return self.api.update_cliente(self.cliente_id, payload)

    def invalidation_keys(self, form):
        return [('/api/clientes',), ('/api/clientes/all',), (f'/api/clientes/{self.cliente_id}',)]

    def success_message(self, form: StatusChangeSchema) -> tuple:
        return self.success_title, f"Cliente movido para {form.status}."


# ========== SELEÇÃO DE RESPONSÁVEIS ==========

def _as_users(users) -> List[User]:
    return [user if isinstance(user, User) else User.model_validate(user) for user in users or []]


def consultant_options(users) -> List[User]:
    """Usuários oferecidos no campo de consultor dos agendamentos e vendas"""
    return [user for user in _as_users(users) if user.is_consultant]


def broker_options(users) -> List[User]:
    """Corretores da equipe de Vendas (inclui o Executivo)"""
    return [user for user in _as_users(users) if user.is_broker]


# ========== AGENDAMENTOS ==========

class AgendamentoForm(FormDialog):
    schema = AgendamentoFormSchema
    messages = {
        'date': "Por favor, selecione uma data",
        'time': "Por favor, informe o horário",
        'location': "Por favor, informe o local",
        'address': "Por favor, informe o endereço",
        'type': "Por favor, selecione o tipo",
        'status': "Por favor, selecione o status",
        'consultant_id': "Por favor, selecione o consultor",
        'broker_id': "Por favor, selecione o corretor",
    }
    success_title = "Agendamento criado"
    success_description = "O agendamento foi criado com sucesso."
    error_title = "Erro ao criar agendamento"
    error_description = "Não foi possível criar o agendamento. Verifique os dados e tente novamente."

    def __init__(self, api, cache, notifier, cliente_id: int, current_user_id: Optional[int] = None):
        super().__init__(api, cache, notifier, current_user_id)
        self.cliente_id = cliente_id

    def build_payload(self, form: AgendamentoFormSchema) -> Dict[str, Any]:
        return AppointmentCreate(
            cliente_id=self.cliente_id,
            user_id=self.current_user_id,
            broker_id=form.broker_id,
            title=form.title,
            type=form.type,
            status=form.status,
            notes=form.description or '',
            scheduled_at=brazil_form_date_to_utc(form.date, form.time),
            location=form.location,
            address=form.address,
        ).to_payload()

    def submit(self, values: Dict[str, Any]) -> SubmitResult:
        if not self.current_user_id:
            notification = self.notifier.error(
                self.error_title, "Você precisa estar logado para criar um agendamento."
            )
            return SubmitResult(False, errors={'user_id': ["Usuário não autenticado"]}, notification=notification)
        return super().submit(values)

    def perform(self, form: AgendamentoFormSchema):
        appointment = self.api.create_appointment(self.build_payload(form))
        # Move o cliente para a etapa Agendamento
        self.api.update_cliente(self.cliente_id, {
            'brokerId': form.broker_id,
            'status': ClienteStatus.AGENDAMENTO,
        })
        return appointment

    def invalidation_keys(self, form):
        return [
            ('/api/appointments',),
            (f'/api/clientes/{self.cliente_id}',),
            ('/api/clientes',),
            ('/api/clientes/all',),
        ]


def _get(entity, name: str):
    """Lê atributo de modelo ou chave camelCase/snake_case de dicionário"""
    if isinstance(entity, dict):
        if name in entity:
            return entity[name]
        return entity.get(to_camel(name))
    return getattr(entity, name, None)


class AppointmentEditForm(FormDialog):
    schema = AppointmentEditFormSchema
    messages = {'time': "Formato de hora inválido. Use HH:MM"}
    success_title = "Agendamento atualizado"
    success_description = "O agendamento foi atualizado com sucesso."
    error_title = "Erro ao atualizar agendamento"
    error_description = "Não foi possível atualizar o agendamento. Verifique os dados e tente novamente."

    def __init__(self, api, cache, notifier, appointment, current_user_id: Optional[int] = None):
        super().__init__(api, cache, notifier, current_user_id)
        self.appointment_id = _get(appointment, 'id')
        self.cliente_id = _get(appointment, 'cliente_id')

    def perform(self, form: AppointmentEditFormSchema):
        payload = AppointmentCreate(
            cliente_id=self.cliente_id,
            user_id=form.consultant_id or self.current_user_id,
            broker_id=form.broker_id,
            type=form.type,
            status=form.status,
            notes=form.description or '',
            scheduled_at=brazil_form_date_to_utc(form.date, form.time),
            location=form.location,
            address=form.address,
        ).to_payload()
        return self.api.replace_appointment(self.appointment_id, payload)

    def invalidation_keys(self, form=None):
        return [
            ('/api/appointments',),
            ('/api/appointments', {'clienteId': self.cliente_id}),
            (f'/api/clientes/{self.cliente_id}',),
        ]

    def delete(self) -> SubmitResult:
        return self._execute(
            lambda: self.api.delete_appointment(self.appointment_id),
            self.invalidation_keys(),
            ("Agendamento excluído", "O agendamento foi excluído com sucesso."),
            ("Erro ao excluir agendamento", "Não foi possível excluir o agendamento. Tente novamente mais tarde."),
        )


# ========== VISITAS ==========

def temperature_label(temperature: Optional[str]) -> str:
    if not temperature:
        return "Não informada"
    try:
        return VISIT_TEMPERATURE_LABELS[int(temperature)]
    except (KeyError, ValueError):
        return f"{temperature}/5"


def visit_notes(temperature: Optional[str], result: Optional[str], next_steps: Optional[str]) -> str:
    """Texto de anotação no formato usado pelas visitas antigas"""
    return (
        f"Temperatura: {temperature_label(temperature)}\n\n"
        f"Resultado: {result or ''}\n\n"
        f"Próximos passos: {next_steps or ''}"
    )


class VisitaForm(FormDialog):
    schema = VisitaFormSchema
    messages = {
        'date': "Por favor, selecione uma data",
        'time': "Por favor, informe o horário",
        'temperature': "Por favor, selecione a temperatura da visita",
        'visit_result': "Por favor, informe como foi a visita",
        'next_steps': "Por favor, informe qual o próximo passo",
    }
    success_title = "Visita registrada"
    success_description = "A visita foi registrada com sucesso."
    error_title = "Erro ao registrar visita"
    error_description = "Não foi possível registrar a visita. Verifique os dados e tente novamente."

    def __init__(self, api, cache, notifier, cliente_id: int, current_user_id: Optional[int] = None):
        super().__init__(api, cache, notifier, current_user_id)
        self.cliente_id = cliente_id

    def build_payload(self, form: VisitaFormSchema) -> Dict[str, Any]:
        return VisitCreate(
            cliente_id=self.cliente_id,
            user_id=self.current_user_id,
            property_id=f"visita-{int(time_module.time() * 1000)}",
            visited_at=brazil_form_date_to_utc(form.date, form.time),
            temperature=int(form.temperature),
            visit_description=form.visit_result,
            next_steps=form.next_steps,
            notes=visit_notes(form.temperature, form.visit_result, form.next_steps),
        ).to_payload()

    def perform(self, form: VisitaFormSchema):
        return self.api.create_visit(self.build_payload(form))

    def invalidation_keys(self, form):
        return [('/api/visits',), (f'/api/clientes/{self.cliente_id}',)]


class VisitEditForm(FormDialog):
    schema = VisitEditFormSchema
    success_title = "Visita atualizada"
    success_description = "Os detalhes da visita foram atualizados com sucesso."
    error_description = "Não foi possível atualizar a visita. Tente novamente."

    def __init__(self, api, cache, notifier, visit, current_user_id: Optional[int] = None):
        super().__init__(api, cache, notifier, current_user_id)
        self.visit_id = _get(visit, 'id')
        self.cliente_id = _get(visit, 'cliente_id')

    def build_payload(self, form: VisitEditFormSchema) -> Dict[str, Any]:
        payload = {
            'visitDescription': form.result,
            'nextSteps': form.next_steps,
            'notes': visit_notes(form.temperature, form.result, form.next_steps),
        }
        if form.temperature:
            payload['temperature'] = int(form.temperature)
        if form.visit_date and form.visit_time:
            payload['visitedAt'] = brazil_form_date_to_utc(form.visit_date, form.visit_time)
        return payload

    def perform(self, form: VisitEditFormSchema):
        return self.api.update_visit(self.visit_id, self.build_payload(form))

    def invalidation_keys(self, form=None):
        return [
            ('/api/visits',),
            ('/api/visits', {'clienteId': self.cliente_id}),
            (f'/api/clientes/{self.cliente_id}',),
        ]

    def delete(self) -> SubmitResult:
        return self._execute(
            lambda: self.api.delete_visit(self.visit_id),
            self.invalidation_keys(),
            ("Visita excluída", "A visita foi excluída com sucesso."),
            ("Erro ao excluir visita", "Não foi possível excluir a visita. Tente novamente mais tarde."),
        )


# ========== VENDAS ==========

VENDA_MESSAGES = {
    'date': "Por favor, selecione uma data",
    'cpf': "Por favor, informe um CPF válido",
    'consultant_id': "Por favor, selecione o consultor",
    'broker_id': "Por favor, selecione o corretor",
    'property_type': "Por favor, selecione o tipo de imóvel",
    'sale_value': "Por favor, informe o valor da venda",
    'payment_method': "Por favor, selecione a forma de pagamento",
    'commission': "Por favor, informe a comissão",
}


def sale_payload(form: VendaFormSchema) -> Dict[str, Any]:
    """Dados da venda; campos do imóvel dependem do tipo"""
    is_apto = form.property_type == PropertyType.APARTAMENTO
    if is_apto:
        builder_name = form.builder_name
    elif form.property_type == PropertyType.CASA:
        builder_name = form.seller_name
    else:
        builder_name = ''

    return SaleCreate(
        consultant_id=form.consultant_id,
        broker_id=form.broker_id,
        value=parse_currency(form.sale_value),
        # Data da venda à meia-noite em UTC
        sold_at=brazil_form_date_to_utc(form.date, '00:00'),
        notes=form.notes or '',
        cpf=form.cpf,
        property_type=form.property_type,
        builder_name=builder_name or '',
        development_name=(form.development_name or '') if is_apto else '',
        block=form.block if is_apto else '',
        unit=form.unit if is_apto else '',
        payment_method=form.payment_method,
        commission=parse_currency(form.commission),
        bonus=parse_currency(form.bonus or '0'),
        total_commission=format_currency(form.total_commission),
    ).to_payload()


def sale_initial_values(sale) -> Dict[str, Any]:
    """
    Valores do formulário de edição a partir de uma venda salva

    Valores monetários voltam formatados em reais ('R$ 350.000,00'), como o
    usuário digita; builderName guarda a construtora (Apto) ou o vendedor (Casa).
    """
    if isinstance(sale, dict):
        sale = Sale.model_validate(sale)

    property_type = sale.property_type or PropertyType.APARTAMENTO
    builder_name = (sale.builder_name or '') if property_type == PropertyType.APARTAMENTO else ''
    seller_name = (sale.builder_name or '') if property_type == PropertyType.CASA else ''

    if sale.total_commission is not None:
        total_commission = format_currency(sale.total_commission)
    else:
        total_commission = format_currency((sale.commission or 0) + (sale.bonus or 0))

    return {
        'date': sale.sold_at.date(),
        'cpf': sale.cpf or '',
        'consultantId': sale.consultant_id,
        'brokerId': sale.broker_id,
        'propertyType': property_type,
        'saleValue': format_currency(sale.value),
        'paymentMethod': sale.payment_method or PaymentMethod.A_VISTA,
        'commission': format_currency(sale.commission) if sale.commission else '',
        'bonus': format_currency(sale.bonus) if sale.bonus else '',
        'totalCommission': total_commission,
        'notes': sale.notes or '',
        'builderName': builder_name,
        'developmentName': sale.development_name or '',
        'block': sale.block or '',
        'unit': sale.unit or '',
        'sellerName': seller_name,
    }


class VendaForm(FormDialog):
    schema = VendaFormSchema
    messages = VENDA_MESSAGES
    root_error_field = 'property_type'
    success_title = "Venda registrada"
    success_description = "A venda foi registrada com sucesso."
    error_title = "Erro ao registrar venda"
    error_description = "Não foi possível registrar a venda. Verifique os dados e tente novamente."

    def __init__(self, api, cache, notifier, cliente_id: int, current_user_id: Optional[int] = None):
        super().__init__(api, cache, notifier, current_user_id)
        self.cliente_id = cliente_id

    def build_payload(self, form: VendaFormSchema) -> Dict[str, Any]:
        payload = sale_payload(form)
        payload.update({'clienteId': self.cliente_id, 'userId': self.current_user_id})
        return payload

    def perform(self, form: VendaFormSchema):
        sale = self.api.create_sale(self.build_payload(form))
        # CPF informado na venda passa para o cadastro e o cliente vai para Venda
        self.api.update_cliente(self.cliente_id, {'cpf': form.cpf, 'status': ClienteStatus.VENDA})
        return sale

    def invalidation_keys(self, form):
        return [('/api/sales',), (f'/api/clientes/{self.cliente_id}',), ('/api/clientes',)]


class SaleEditForm(FormDialog):
    schema = VendaFormSchema
    messages = VENDA_MESSAGES
    root_error_field = 'property_type'
    success_title = "Venda atualizada"
    success_description = "A venda foi atualizada com sucesso."
    error_title = "Erro ao atualizar venda"
    error_description = "Não foi possível atualizar a venda. Verifique os dados e tente novamente."

    def __init__(self, api, cache, notifier, sale, current_user_id: Optional[int] = None):
        super().__init__(api, cache, notifier, current_user_id)
        self.sale = sale
        self.sale_id = _get(sale, 'id')
        self.cliente_id = _get(sale, 'cliente_id')

    def initial_values(self, sale=None) -> Dict[str, Any]:
        return sale_initial_values(sale if sale is not None else self.sale)

    def perform(self, form: VendaFormSchema):
        return self.api.update_sale(self.sale_id, sale_payload(form))

    def invalidation_keys(self, form=None):
        return [('/api/sales',), ('/api/sales', {'clienteId': self.cliente_id})]

    def delete(self) -> SubmitResult:
        return self._execute(
            lambda: self.api.delete_sale(self.sale_id),
            self.invalidation_keys(),
            ("Venda excluída", "A venda foi excluída com sucesso."),
            ("Erro ao excluir venda", "Não foi possível excluir a venda. Tente novamente mais tarde."),
        )


# ========== ANOTAÇÕES ==========

class ClienteNoteForm(FormDialog):
    schema = NoteFormSchema
    messages = {'text': "A anotação precisa ter pelo menos 3 caracteres"}
    success_title = "Anotação adicionada"
    success_description = "A anotação foi adicionada com sucesso"
    error_description = "Não foi possível adicionar a anotação. Tente novamente."

    def __init__(self, api, cache, notifier, cliente_id: int, current_user_id: Optional[int] = None):
        super().__init__(api, cache, notifier, current_user_id)
        self.cliente_id = cliente_id

    def perform(self, form: NoteFormSchema):
        payload = ClienteNoteCreate(
            cliente_id=self.cliente_id, user_id=self.current_user_id, text=form.text
        ).to_payload()
        return self.api.create_cliente_note(self.cliente_id, payload)

    def invalidation_keys(self, form=None):
        return [('/api/clientes', str(self.cliente_id)), (f'/api/clientes/{self.cliente_id}/notes',)]


class ClienteNoteEditForm(ClienteNoteForm):
    success_title = "Anotação atualizada"
    success_description = "A anotação foi atualizada com sucesso"
    error_description = "Não foi possível atualizar a anotação. Tente novamente."

    def __init__(self, api, cache, notifier, note, current_user_id: Optional[int] = None):
        super().__init__(api, cache, notifier, _get(note, 'cliente_id'), current_user_id)
        self.note_id = _get(note, 'id')

    def perform(self, form: NoteFormSchema):
        return self.api.update_cliente_note(self.note_id, {'text': form.text})

    def delete(self) -> SubmitResult:
        return self._execute(
            lambda: self.api.delete_cliente_note(self.note_id),
            self.invalidation_keys(),
            ("Anotação excluída", "A anotação foi excluída com sucesso"),
            ("Erro", "Não foi possível excluir a anotação. Tente novamente."),
        )
