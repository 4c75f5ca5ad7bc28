"""
Pacote principal do CRM Imobiliário - cliente Python

Contém os módulos principais do sistema:
- api_client: Cliente da API HTTP do CRM (/api/...)
- database_rest: Cliente REST estilo PostgREST para o banco
- forms: Formulários de clientes, agendamentos, visitas, vendas e anotações
- job_poller: Acompanhamento de processos em background do WhatsApp
- dashboard: Métricas e relatórios
- config: Configurações do sistema
"""

__version__ = "1.0.0"
__author__ = "CRM Imobiliário"
__description__ = "Cliente Python do CRM imobiliário com integração WhatsApp"
