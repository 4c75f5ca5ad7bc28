"""
Cache de consultas com invalidação por chave

Chaves são tuplas no formato usado pelas telas, por exemplo
('/api/clientes',), ('/api/sales', {'clienteId': 3}) ou ('/api/clientes', '7').
Invalidar um prefixo marca as entradas correspondentes como desatualizadas e
busca novamente, na hora, as que têm telas inscritas.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]


def normalize_key(key) -> QueryKey:
    if isinstance(key, tuple):
        return key
    if isinstance(key, list):
        return tuple(key)
    return (key,)


def _freeze(value) -> Any:
    """Forma hashable da chave; dicts de filtros viram tuplas ordenadas"""
    if isinstance(value, dict):
        return (dict, tuple(sorted((str(k), _freeze(v)) for k, v in value.items())))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    """Verifica se a chave começa com o prefixo (comparação elemento a elemento)"""
    if len(prefix) > len(key):
        return False
    return all(key[i] == prefix[i] for i in range(len(prefix)))


@dataclass
class CacheEntry:
    key: QueryKey
    fetcher: Optional[Callable[[], Any]] = None
    data: Any = None
    error: Optional[Exception] = None
    updated_at: Optional[float] = None
    is_invalidated: bool = False
    fetch_count: int = 0
    subscribers: List[Callable[[Any], None]] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return self.updated_at is not None

    @property
    def is_active(self) -> bool:
        return bool(self.subscribers)


class QueryCache:
    def __init__(self, stale_time: Optional[float] = None):
        """
        Args:
            stale_time: Segundos até os dados ficarem desatualizados.
                None mantém os dados válidos até serem invalidados.
        """
        self.stale_time = stale_time
        # Entradas indexadas pela forma congelada; CacheEntry.key guarda a original
        self._entries: Dict[Any, CacheEntry] = {}
        self._lock = threading.RLock()

    def _entry(self, key: QueryKey) -> CacheEntry:
        entry = self._entries.get(_freeze(key))
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[_freeze(key)] = entry
        return entry

    def _is_stale(self, entry: CacheEntry) -> bool:
        if not entry.has_data or entry.is_invalidated:
            return True
        if self.stale_time is None:
            return False
        return (time.monotonic() - entry.updated_at) > self.stale_time

    def _run_fetch(self, entry: CacheEntry) -> Any:
        try:
            data = entry.fetcher()
        except Exception as e:
            entry.error = e
            logger.error(f"Erro ao buscar {entry.key}: {e}")
            raise

        with self._lock:
            entry.data = data
            entry.error = None
            entry.updated_at = time.monotonic()
            entry.is_invalidated = False
            entry.fetch_count += 1
            subscribers = list(entry.subscribers)

        for callback in subscribers:
            callback(data)
        return data

    def fetch(self, key, fetcher: Callable[[], Any] = None) -> Any:
        """Retorna os dados em cache ou busca se ausentes/desatualizados"""
        key = normalize_key(key)
        with self._lock:
            entry = self._entry(key)
            if fetcher is not None:
                entry.fetcher = fetcher
            if entry.fetcher is None:
                raise ValueError(f"Nenhuma função de busca registrada para {key}")
            if not self._is_stale(entry):
                return entry.data

        logger.debug(f"Buscando consulta {key}")
        return self._run_fetch(entry)

    def subscribe(self, key, callback: Callable[[Any], None],
                  fetcher: Callable[[], Any] = None) -> Callable[[], None]:
        """Inscreve uma tela na chave; retorna função para cancelar a inscrição"""
        key = normalize_key(key)
        with self._lock:
            entry = self._entry(key)
            if fetcher is not None:
                entry.fetcher = fetcher
            entry.subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in entry.subscribers:
                    entry.subscribers.remove(callback)

        return unsubscribe

    def invalidate(self, prefix) -> int:
        """
        Invalida todas as consultas cuja chave começa com o prefixo

        Consultas ativas são buscadas novamente na hora; as demais na
        próxima chamada de fetch. Retorna quantas entradas foram invalidadas.
        """
        prefix = normalize_key(prefix)
        with self._lock:
            matched = [entry for entry in self._entries.values() if key_matches(entry.key, prefix)]
            for entry in matched:
                entry.is_invalidated = True
            to_refetch = [entry for entry in matched if entry.is_active and entry.fetcher is not None]

        if matched:
            logger.debug(f"Invalidadas {len(matched)} consultas com prefixo {prefix}")

        for entry in to_refetch:
            try:
                self._run_fetch(entry)
            except Exception:
                # Erro já registrado na entrada; a tela verá entry.error
                continue

        return len(matched)

    def set_data(self, key, data: Any):
        key = normalize_key(key)
        with self._lock:
            entry = self._entry(key)
            entry.data = data
            entry.updated_at = time.monotonic()
            entry.is_invalidated = False

    def get_data(self, key) -> Any:
        key = normalize_key(key)
        with self._lock:
            entry = self._entries.get(_freeze(key))
            return entry.data if entry else None

    def get_entry(self, key) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(_freeze(normalize_key(key)))

    def is_invalidated(self, key) -> bool:
        entry = self.get_entry(key)
        return entry is not None and self._is_stale(entry)

    def remove(self, key):
        with self._lock:
            self._entries.pop(_freeze(normalize_key(key)), None)

    def clear(self):
        with self._lock:
            self._entries.clear()
