"""
Exceções do CRM Imobiliário
"""
from typing import Dict, List, Optional


class CRMError(Exception):
    """Erro base do sistema"""


class ApiRequestError(CRMError):
    """Falha em requisição HTTP para a API do CRM"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class DatabaseRestError(ApiRequestError):
    """Falha no proxy REST do banco de dados"""


class FormValidationError(CRMError):
    """Dados do formulário inválidos; nenhuma requisição foi feita"""

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        fields = ', '.join(sorted(errors)) or 'formulário'
        super().__init__(f"Dados inválidos em: {fields}")


class JobError(CRMError):
    """Falha em processo sequencial do WhatsApp"""

    def __init__(self, message: str, connection_lost: bool = False):
        super().__init__(message)
        self.connection_lost = connection_lost
