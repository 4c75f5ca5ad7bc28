"""
Exportação dos relatórios gerenciais para planilhas Excel
Cada relatório vira um arquivo com aba de resumo e uma aba por agrupamento
"""
import logging
import os
from datetime import datetime
from typing import Any, Dict, List

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from crm_imobiliario.config import active_config
from crm_imobiliario.stores import PERIODS, REPORTS

logger = logging.getLogger(__name__)

SUMMARY_SHEET = 'Resumo'

# Agrupamento -> (nome da aba, rótulo da coluna de chave)
BREAKDOWN_SHEETS = {
    'byStatus': ('Por Status', 'Status'),
    'byUser': ('Por Usuário', 'ID Usuário'),
    'byDay': ('Por Dia', 'Dia'),
    'byProperty': ('Por Imóvel', 'Imóvel'),
    'byMonth': ('Por Mês', 'Mês'),
}

COLUMN_LABELS = {
    'total': 'Total',
    'totalValue': 'Valor Total',
    'totalLeads': 'Total de Leads',
    'totalAppointments': 'Total de Agendamentos',
    'totalVisits': 'Total de Visitas',
    'totalSales': 'Total de Vendas',
    'count': 'Quantidade',
    'value': 'Valor',
    'userId': 'ID Usuário',
    'fullName': 'Nome',
    'role': 'Cargo',
    'leads': 'Leads',
    'appointments': 'Agendamentos',
    'visits': 'Visitas',
    'sales': 'Vendas',
    'conversionRates.appointmentsToLeads': 'Leads > Agendamentos (%)',
    'conversionRates.visitsToAppointments': 'Agendamentos > Visitas (%)',
    'conversionRates.salesToVisits': 'Visitas > Vendas (%)',
}


class ReportExcelExporter:
    """Exporta relatórios do CRM para .xlsx"""

    def __init__(self, output_folder: str = None):
        self.output_folder = output_folder or active_config.REPORTS_OUTPUT_FOLDER
        self._ensure_output_folder()

    def _ensure_output_folder(self):
        """Cria pasta de saída se não existir"""
        os.makedirs(self.output_folder, exist_ok=True)

    def export_report(self, report: str, report_data: Dict[str, Any],
                      filename: str = None, period: str = None) -> str:
        """
        Exporta um relatório montado por build_report

        Args:
            report: Tipo do relatório (clientes, production, appointments, visits, sales)
            report_data: Dicionário do relatório
            filename: Nome do arquivo (opcional)
            period: Período usado no relatório, só para o resumo

        Returns:
            Caminho do arquivo gerado
        """
        if report not in REPORTS:
            raise ValueError(f"Relatório inválido: {report}")
        if not report_data:
            raise ValueError("Nenhum dado fornecido para exportação")

        if not filename:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"relatorio_{report}_{timestamp}.xlsx"
        if not filename.endswith('.xlsx'):
            filename += '.xlsx'

        filepath = os.path.join(self.output_folder, filename)
        logger.info(f"Exportando relatório de {REPORTS[report]} para {filepath}")

        try:
            with pd.ExcelWriter(filepath, engine='openpyxl') as writer:
                resumo = self._summary_dataframe(report, report_data, period)
                resumo.to_excel(writer, sheet_name=SUMMARY_SHEET, index=False)

                for chave, (aba, rotulo) in BREAKDOWN_SHEETS.items():
                    if chave in report_data:
                        df = self._breakdown_dataframe(rotulo, report_data[chave])
                        df.to_excel(writer, sheet_name=aba, index=False)

                self._apply_excel_formatting(writer)

            logger.info(f"Arquivo Excel gerado com sucesso: {filepath}")
            return filepath

        except Exception as e:
            logger.error(f"Erro ao gerar arquivo Excel: {e}")
            raise

    def _summary_dataframe(self, report: str, report_data: Dict[str, Any], period: str = None) -> pd.DataFrame:
        linhas = [{'Indicador': 'Relatório', 'Valor': REPORTS[report]}]
        if period:
            linhas.append({'Indicador': 'Período', 'Valor': PERIODS.get(period, period)})

        for chave, valor in report_data.items():
            if not isinstance(valor, dict):
                linhas.append({'Indicador': COLUMN_LABELS.get(chave, chave), 'Valor': valor})

        linhas.append({'Indicador': 'Data de Exportação', 'Valor': datetime.now().strftime("%d/%m/%Y %H:%M:%S")})
        return pd.DataFrame(linhas)

    def _breakdown_dataframe(self, rotulo: str, dados: Dict[Any, Any]) -> pd.DataFrame:
        """Uma linha por chave do agrupamento; dicts aninhados viram colunas"""
        linhas: List[Dict[str, Any]] = []
        for chave, valor in dados.items():
            if isinstance(valor, dict):
                linhas.append({rotulo: chave, **valor})
            else:
                linhas.append({rotulo: chave, 'count': valor})

        if not linhas:
            return pd.DataFrame(columns=[rotulo, COLUMN_LABELS['count']])

        df = pd.json_normalize(linhas)
        # production repete o id dentro do item
        if 'userId' in df.columns and rotulo == COLUMN_LABELS['userId']:
            df = df.drop(columns=['userId'])
        return df.rename(columns=COLUMN_LABELS)

    def _apply_excel_formatting(self, writer):
        """Aplica formatação ao arquivo Excel"""
        header_fill = PatternFill(start_color='366092', end_color='366092', fill_type='solid')
        header_font = Font(color='FFFFFF', bold=True)
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        for sheet_name in writer.sheets:
            worksheet = writer.sheets[sheet_name]

            for cell in worksheet[1]:
                cell.font = header_font
                cell.fill = header_fill
                cell.alignment = Alignment(horizontal='center', vertical='center')
                cell.border = thin_border

            # Auto-ajustar largura das colunas
            for column in worksheet.columns:
                max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
                column_letter = get_column_letter(column[0].column)
                worksheet.column_dimensions[column_letter].width = min(max_length + 2, 50)

            for row in worksheet.iter_rows(min_row=2, max_row=worksheet.max_row):
                for cell in row:
                    if cell.value is not None:
                        cell.border = thin_border

            worksheet.freeze_panes = 'A2'

    def get_export_summary(self, filepath: str) -> Dict[str, Any]:
        """
        Retorna resumo de um arquivo exportado

        Args:
            filepath: Caminho do arquivo exportado

        Returns:
            Dicionário com informações do arquivo
        """
        if not os.path.exists(filepath):
            return {'error': 'Arquivo não encontrado'}

        try:
            with pd.ExcelFile(filepath, engine='openpyxl') as planilha:
                abas = list(planilha.sheet_names)
                resumo = pd.read_excel(planilha, sheet_name=SUMMARY_SHEET)

            file_stats = os.stat(filepath)
            return {
                'arquivo': os.path.basename(filepath),
                'caminho_completo': filepath,
                'abas': abas,
                'indicadores': dict(zip(resumo['Indicador'], resumo['Valor'])),
                'tamanho_bytes': file_stats.st_size,
                'data_criacao': datetime.fromtimestamp(file_stats.st_ctime).strftime("%d/%m/%Y %H:%M:%S"),
            }

        except Exception as e:
            logger.error(f"Erro ao gerar resumo: {e}")
            return {'error': str(e)}
