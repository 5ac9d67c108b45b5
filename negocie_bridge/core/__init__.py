# Core modules exports

# Erros e tags
from negocie_bridge.core.errors import (
    NegociacaoError,
    UserFacingError,
    UserNotFound,
    describe_error,
)
from negocie_bridge.core.status_tags import StatusTag

# Cache
from negocie_bridge.core.cache_store import UserCacheStore, UserRecord

# Diretorio de usuarios
from negocie_bridge.core.user_directory import DirectoryEntry, StaticUserDirectory

# API externa
from negocie_bridge.core.negocie_gateway import NegocieGateway

# Pipeline / sync
from negocie_bridge.core.escalation import EscalationStateMachine, classify_error
from negocie_bridge.core.pipeline import FULL_RUN, LIST_ONLY, NegotiationPipeline, PipelineOptions
from negocie_bridge.core.sync import SyncOrchestrator, SyncReport

__all__ = [
    # Erros e tags
    'NegociacaoError',
    'UserFacingError',
    'UserNotFound',
    'describe_error',
    'StatusTag',
    # Cache
    'UserCacheStore',
    'UserRecord',
    # Diretorio
    'DirectoryEntry',
    'StaticUserDirectory',
    # API externa
    'NegocieGateway',
    # Pipeline / sync
    'EscalationStateMachine',
    'classify_error',
    'FULL_RUN',
    'LIST_ONLY',
    'NegotiationPipeline',
    'PipelineOptions',
    'SyncOrchestrator',
    'SyncReport',
]
