"""Repository layer for data persistence."""

from .unit_of_work import UnitOfWork
from .template_repository import TemplateRepository
from .instance_repository import InstanceRepository
from .execution_repository import ExecutionRepository
from .trigger_repository import TriggerRepository
from .directory_repository import DirectoryRepository

__all__ = [
    "UnitOfWork",
    "TemplateRepository",
    "InstanceRepository",
    "ExecutionRepository",
    "TriggerRepository",
    "DirectoryRepository",
]
