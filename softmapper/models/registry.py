"""
SoftMapper Mapper Registry — name → class lookup for relation targets.

Relations may name their related mapper by string (``"Comment"``) so that
models can refer to each other before both are defined. Every concrete
``Mapper`` subclass registers itself here on class creation; the registry
also carries the database handle shared by all mappers.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Type, Union, TYPE_CHECKING

from ..faults.domains import MapperNotFoundFault

if TYPE_CHECKING:
    from ..db.engine import MapperDatabase
    from .base import Mapper

logger = logging.getLogger("softmapper.models")

__all__ = ["MapperRegistry"]


class MapperRegistry:
    """
    Global registry for all Mapper subclasses.

    Tracks concrete mappers by class name and resolves string references
    used in relationship declarations.
    """

    _mappers: Dict[str, Type[Mapper]] = {}
    _db: Optional[MapperDatabase] = None

    @classmethod
    def register(cls, mapper_cls: Type[Mapper]) -> None:
        """Register a mapper class."""
        name = mapper_cls.__name__
        if name in cls._mappers and cls._mappers[name] is not mapper_cls:
            logger.debug(f"Mapper '{name}' re-registered ({mapper_cls.__module__})")
        cls._mappers[name] = mapper_cls

    @classmethod
    def get(cls, name: str) -> Optional[Type[Mapper]]:
        """Get mapper class by name."""
        return cls._mappers.get(name)

    @classmethod
    def resolve(cls, target: Union[str, Type[Mapper]]) -> Type[Mapper]:
        """
        Resolve a mapper class or registered class name.

        Raises:
            MapperNotFoundFault: name is not registered
        """
        if isinstance(target, str):
            mapper_cls = cls._mappers.get(target)
            if mapper_cls is None:
                raise MapperNotFoundFault(target)
            return mapper_cls
        return target

    @classmethod
    def all_mappers(cls) -> Dict[str, Type[Mapper]]:
        """Get all registered mappers."""
        return dict(cls._mappers)

    @classmethod
    def set_database(cls, db: Optional[MapperDatabase]) -> None:
        """Set global database for all mappers."""
        cls._db = db

    @classmethod
    def get_database(cls) -> Optional[MapperDatabase]:
        return cls._db

    @classmethod
    def reset(cls) -> None:
        """Clear registry (for testing)."""
        cls._mappers.clear()
        cls._db = None
