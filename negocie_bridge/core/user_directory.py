"""
Diretorio de usuarios: telefone -> documento (CPF/CNPJ) e nome.

Em producao pode ser um banco; aqui o padrao e um arquivo JSON no
formato {"<telefone>": {"cpf_cnpj": "...", "nome": "..."}}.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryEntry:
    document: str
    name: Optional[str] = None


class UserDirectory(Protocol):
    def lookup(self, phone: str) -> Optional[DirectoryEntry]:
        ...

    def phones(self) -> List[str]:
        ...


class StaticUserDirectory:
    """Diretorio em memoria, sem estado global."""

    def __init__(self, entries: Optional[Dict[str, DirectoryEntry]] = None):
        self._entries: Dict[str, DirectoryEntry] = dict(entries or {})

    @classmethod
    def from_mapping(cls, data: Dict[str, dict]) -> "StaticUserDirectory":
        entries = {}
        for phone, info in data.items():
            document = str(info.get("cpf_cnpj") or info.get("document") or "").strip()
            if not document:
                logger.warning(f"Entrada sem documento ignorada: {phone}")
                continue
            entries[str(phone)] = DirectoryEntry(document=document, name=info.get("nome") or info.get("name"))
        return cls(entries)

    @classmethod
    def from_json_file(cls, path: str) -> "StaticUserDirectory":
        with open(Path(path), encoding="utf-8") as fh:
            data = json.load(fh)
        directory = cls.from_mapping(data)
        logger.info(f"Diretorio de usuarios carregado: {len(directory)} telefones ({path})")
        return directory

    def lookup(self, phone: str) -> Optional[DirectoryEntry]:
        return self._entries.get(phone)

    def phones(self) -> List[str]:
        return list(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)
