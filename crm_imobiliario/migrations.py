"""
Migrações de esquema do banco do CRM

Cada migração verifica o information_schema antes de alterar a tabela,
então pode ser executada novamente sem efeito colateral.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from crm_imobiliario.database_rest import DatabaseRestClient, get_db_rest
from crm_imobiliario.errors import DatabaseRestError

logger = logging.getLogger(__name__)

COLUMN_EXISTS_SQL = """
    SELECT column_name
    FROM information_schema.columns
    WHERE table_name = $1 AND column_name = $2
"""


@dataclass
class MigrationResult:
    id: int
    name: str
    success: bool
    message: str
    # Colunas/objetos efetivamente criados nesta execução
    applied: List[str] = field(default_factory=list)


class Migration:
    """Base das migrações: id define a ordem de execução"""

    def __init__(self, id: int, name: str, description: str = ''):
        self.id = id
        self.name = name
        self.description = description

    def apply(self, db: DatabaseRestClient) -> List[str]:
        raise NotImplementedError

    def run(self, db: DatabaseRestClient) -> MigrationResult:
        logger.info(f"Migração {self.id:03d} - {self.name}")
        try:
            applied = self.apply(db)
        except DatabaseRestError as e:
            message = f"Erro na migração {self.name}: {e}"
            logger.error(message)
            return MigrationResult(self.id, self.name, False, message)

        if applied:
            message = f"Aplicado: {', '.join(applied)}"
        else:
            message = "Nada a fazer, esquema já atualizado"
        logger.info(f"   {message}")
        return MigrationResult(self.id, self.name, True, message, applied)


class AddColumnsMigration(Migration):
    """Adiciona colunas que ainda não existem em uma tabela"""

    def __init__(self, id: int, name: str, table: str, columns: List[Tuple[str, str]], description: str = ''):
        super().__init__(id, name, description)
        self.table = table
        self.columns = columns

    def column_exists(self, db: DatabaseRestClient, column: str) -> bool:
        result = db.execute_sql(COLUMN_EXISTS_SQL, [self.table, column])
        return len(result.rows) > 0

    def apply(self, db: DatabaseRestClient) -> List[str]:
        applied = []
        for column, definition in self.columns:
            if self.column_exists(db, column):
                logger.debug(f"Coluna {self.table}.{column} já existe")
                continue
            logger.info(f"Adicionando coluna {self.table}.{column}")
            db.execute_sql(f"ALTER TABLE {self.table} ADD COLUMN {column} {definition}")
            applied.append(f"{self.table}.{column}")
        return applied


class SqlMigration(Migration):
    """Executa uma sequência de comandos idempotentes"""

    def __init__(self, id: int, name: str, statements: List[str], description: str = ''):
        super().__init__(id, name, description)
        self.statements = statements

    def apply(self, db: DatabaseRestClient) -> List[str]:
        for statement in self.statements:
            db.execute_sql(statement)
        return [self.name]


WHATSAPP_CHECK_TRIGGER = [
    """
    CREATE TABLE IF NOT EXISTS sistema_whatsapp_check_queue (
        id SERIAL PRIMARY KEY,
        cliente_id INTEGER NOT NULL REFERENCES clientes(id) ON DELETE CASCADE,
        phone TEXT NOT NULL,
        processed BOOLEAN DEFAULT false,
        attempts INTEGER DEFAULT 0,
        last_attempt TIMESTAMP,
        result BOOLEAN,
        error_message TEXT,
        created_at TIMESTAMP DEFAULT NOW(),
        updated_at TIMESTAMP DEFAULT NOW(),
        UNIQUE(cliente_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_whatsapp_queue_processed ON sistema_whatsapp_check_queue(processed)",
    """
    CREATE OR REPLACE FUNCTION trigger_whatsapp_check()
    RETURNS TRIGGER AS $$
    BEGIN
        IF NEW.phone IS NOT NULL AND NEW.phone != '' THEN
            INSERT INTO sistema_whatsapp_check_queue (cliente_id, phone, created_at)
            VALUES (NEW.id, NEW.phone, NOW())
            ON CONFLICT (cliente_id) DO UPDATE SET
                phone = EXCLUDED.phone,
                created_at = EXCLUDED.created_at,
                processed = false;
        END IF;
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """,
    "DROP TRIGGER IF EXISTS tr_whatsapp_check_on_insert ON clientes",
    """
    CREATE TRIGGER tr_whatsapp_check_on_insert
        AFTER INSERT ON clientes
        FOR EACH ROW
        EXECUTE FUNCTION trigger_whatsapp_check()
    """,
    "DROP TRIGGER IF EXISTS tr_whatsapp_check_on_update ON clientes",
    """
    CREATE TRIGGER tr_whatsapp_check_on_update
        AFTER UPDATE OF phone ON clientes
        FOR EACH ROW
        WHEN (OLD.phone IS DISTINCT FROM NEW.phone AND NEW.phone IS NOT NULL AND NEW.phone != '')
        EXECUTE FUNCTION trigger_whatsapp_check()
    """,
]


MIGRATIONS: List[Migration] = [
    AddColumnsMigration(1, 'profile_pic_clientes', 'clientes', [
        ('profile_pic_url', 'TEXT'),
    ], "Foto de perfil do WhatsApp dos clientes"),
    AddColumnsMigration(2, 'cliente_details', 'clientes', [
        ('cpf', 'TEXT'),
        ('broker_id', 'INTEGER REFERENCES sistema_users(id)'),
        ('updated_at', 'TIMESTAMP WITH TIME ZONE DEFAULT NOW()'),
    ]),
    AddColumnsMigration(3, 'appointment_details', 'clientes_agendamentos', [
        ('address', 'TEXT'),
        ('broker_id', 'INTEGER REFERENCES sistema_users(id)'),
        ('assigned_to', 'INTEGER REFERENCES sistema_users(id)'),
    ]),
    AddColumnsMigration(4, 'visit_details', 'clientes_visitas', [
        ('temperature', 'INTEGER'),
        ('visit_description', 'TEXT'),
        ('next_steps', 'TEXT'),
        ('broker_id', 'INTEGER REFERENCES sistema_users(id)'),
        ('assigned_to', 'INTEGER REFERENCES sistema_users(id)'),
        ('updated_at', 'TIMESTAMP WITH TIME ZONE DEFAULT NOW()'),
    ], "Temperatura, descrição e próximos passos da visita"),
    AddColumnsMigration(5, 'sale_details', 'clientes_vendas', [
        ('cpf', 'TEXT'),
        ('property_type', 'TEXT'),
        ('builder_name', 'TEXT'),
        ('development_name', 'TEXT'),
        ('block', 'TEXT'),
        ('unit', 'TEXT'),
        ('payment_method', 'TEXT'),
        ('commission', 'NUMERIC(12, 2)'),
        ('bonus', 'NUMERIC(12, 2)'),
        ('total_commission', 'NUMERIC(12, 2)'),
        ('assigned_to', 'INTEGER REFERENCES sistema_users(id)'),
    ]),
    AddColumnsMigration(6, 'whatsapp_remote_jid', 'sistema_whatsapp_instances', [
        ('remote_jid', 'TEXT'),
    ]),
    SqlMigration(7, 'whatsapp_auto_check_trigger', WHATSAPP_CHECK_TRIGGER,
                 "Fila de verificação de WhatsApp alimentada por trigger em clientes"),
]


def run_migrations(db: DatabaseRestClient = None, migrations: Optional[List[Migration]] = None) -> Dict[str, Any]:
    """
    Executa as migrações em ordem de id

    Para na primeira falha; as seguintes não são executadas.

    Returns:
        Resumo com totais e o resultado de cada migração executada
    """
    db = db or get_db_rest()
    pending = sorted(migrations if migrations is not None else MIGRATIONS, key=lambda m: m.id)

    logger.info(f"Executando {len(pending)} migrações")
    results: List[MigrationResult] = []
    for migration in pending:
        result = migration.run(db)
        results.append(result)
        if not result.success:
            logger.error(f"Migrações interrompidas na {migration.id:03d} - {migration.name}")
            break

    summary = {
        'total': len(pending),
        'executed': len(results),
        'applied': sum(1 for r in results if r.success and r.applied),
        'failed': sum(1 for r in results if not r.success),
        'success': all(r.success for r in results),
        'results': results,
    }
    logger.info(
        f"Migrações: {summary['executed']}/{summary['total']} executadas, "
        f"{summary['applied']} com alterações, {summary['failed']} com falha"
    )
    return summary
