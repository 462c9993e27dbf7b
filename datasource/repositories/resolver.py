"""
Model Resolution

Works out which SQLAlchemy model a repository manages.

Resolution Order:
=================
First success wins:

    1. DECLARED    → repository declares its model
                     (class attribute `model`, BaseRepository[Model],
                     or an overridden declared_model() classmethod)
    2. DISABLED    → AUTO_RESOLVE_MODELS=false: fail right here
    3. CANDIDATES  → PostsRepository → ["Posts", "Post"]
                     PostRepo        → ["Post"]
    4. IMPORTS     → a candidate imported at the top of the repository's
                     module:  from app.models import Post
    5. NAMESPACE   → a candidate found in MODEL_NAMESPACE:  app.models.Post
    6. FAIL        → EntityNotResolvableError listing names and imports tried

Steps 3-5 are a best-effort naming convention. Resolution.by_convention
tells callers when a model was guessed instead of declared.

Import Index:
=============
The repository module's source is parsed with `ast`. Only import
statements directly in the module body, before the first class
definition, are indexed:

    import app.models as m                 → {"m": "app.models"}
    from app.models import Post, Tag as T  → {"Post": "app.models.Post",
                                              "T": "app.models.Tag"}
    from .models import Post               → resolved against the package

Imports nested in `if TYPE_CHECKING:`, `try:` or functions are ignored.

Caching:
========
Import indices and successful resolutions are cached on the resolver
instance for the life of the process. Call EntityResolver.clear() after
reloading repository modules.
"""

import ast
import functools
import importlib
import importlib.util
import inspect
import re
import sys
from dataclasses import dataclass
from typing import Any, Optional

import inflection

from datasource.core.exceptions import EntityNotResolvableError
from datasource.core.logging import get_logger
from datasource.models.base import is_entity_type

logger = get_logger(__name__)

STRATEGY_DECLARED = "declared"
STRATEGY_IMPORT = "import"
STRATEGY_NAMESPACE = "namespace"


@dataclass(frozen=True)
class RepositoryDescriptor:
    """What the resolver knows about a repository class."""

    repository_type_name: str
    declared_entity: Optional[type] = None
    module_name: Optional[str] = None


@dataclass(frozen=True)
class Resolution:
    """A resolved model and the strategy that found it."""

    model: type
    strategy: str

    @property
    def by_convention(self) -> bool:
        """True when the model was guessed from naming conventions."""
        return self.strategy != STRATEGY_DECLARED


# ═══════════════════════════════════════════════════════════════════════════════
# NAMING CONVENTIONS
# ═══════════════════════════════════════════════════════════════════════════════


def candidate_names(repository_type_name: str) -> list[str]:
    """
    Derive model names from a repository class name.

    Example:
        candidate_names("PostsRepository")  # ["Posts", "Post"]
        candidate_names("UserRepo")         # ["User"]
    """
    base = re.sub(r"Repository$", "", repository_type_name)
    if base == repository_type_name:
        base = re.sub(r"Repo$", "", repository_type_name)

    names = [base, inflection.singularize(base)]
    return [name for name in dict.fromkeys(names) if name]


def parse_import_index(source: str, package: Optional[str] = None) -> dict[str, str]:
    """
    Map imported names to dotted paths for the module-level imports
    that precede the first class definition in source.

    Args:
        source: Python source of the module
        package: Package used to resolve relative imports

    Returns:
        {alias_or_name: "fully.qualified.name"}
    """
    imports: dict[str, str] = {}

    for node in ast.parse(source).body:
        if isinstance(node, ast.ClassDef):
            break

        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    imports[alias.asname] = alias.name
                else:
                    # `import a.b` binds `a`
                    top = alias.name.partition(".")[0]
                    imports[top] = top

        elif isinstance(node, ast.ImportFrom):
            module = _absolute_module(node, package)
            if module is None:
                continue
            for alias in node.names:
                if alias.name == "*":
                    continue
                imports[alias.asname or alias.name] = f"{module}.{alias.name}"

    return imports


def _absolute_module(node: ast.ImportFrom, package: Optional[str]) -> Optional[str]:
    if node.level == 0:
        return node.module

    relative = "." * node.level + (node.module or "")
    try:
        return importlib.util.resolve_name(relative, package)
    except (ImportError, ValueError):
        return None


def locate(path: str) -> Any:
    """
    Import the object a dotted path points at.

    Returns:
        The object, or None when the module or attribute does not exist
    """
    module_name, _, attribute = path.rpartition(".")
    if not module_name or not attribute:
        return None

    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None

    return getattr(module, attribute, None)


# ═══════════════════════════════════════════════════════════════════════════════
# RESOLVER
# ═══════════════════════════════════════════════════════════════════════════════


class EntityResolver:
    """
    Resolves repository descriptors to models and owns the caches for it.

    Example:
        resolver = EntityResolver()
        resolution = resolver.resolve(
            RepositoryDescriptor("PostsRepository", module_name="app.repositories"),
            model_namespace="app.models",
        )
        resolution.model          # <class 'app.models.Post'>
        resolution.by_convention  # True
    """

    def __init__(self) -> None:
        self._imports: dict[tuple[str, str], dict[str, str]] = {}
        self._resolved: dict[tuple[RepositoryDescriptor, bool, str], Resolution] = {}

    def resolve(
        self,
        descriptor: RepositoryDescriptor,
        *,
        auto_resolve: bool = True,
        model_namespace: str = "app.models",
    ) -> Resolution:
        """
        Resolve the model for a repository.

        Raises:
            EntityNotResolvableError: No strategy produced a mapped class
        """
        cache_key = (descriptor, auto_resolve, model_namespace)
        cached = self._resolved.get(cache_key)
        if cached is not None:
            return cached

        resolution = self._resolve(descriptor, auto_resolve, model_namespace)
        self._resolved[cache_key] = resolution

        if resolution.by_convention:
            logger.info(
                "Model resolved by convention",
                repository=descriptor.repository_type_name,
                model=resolution.model.__name__,
                strategy=resolution.strategy,
            )
        else:
            logger.debug(
                "Model resolved",
                repository=descriptor.repository_type_name,
                model=resolution.model.__name__,
            )
        return resolution

    def _resolve(
        self,
        descriptor: RepositoryDescriptor,
        auto_resolve: bool,
        model_namespace: str,
    ) -> Resolution:
        repository = descriptor.repository_type_name

        declared = descriptor.declared_entity
        if declared is not None and is_entity_type(declared):
            return Resolution(declared, STRATEGY_DECLARED)

        if not auto_resolve:
            raise EntityNotResolvableError(
                repository,
                "Auto-resolution is disabled; declare `model` on the repository.",
                model_namespace=model_namespace,
            )

        candidates = candidate_names(repository)
        imports = self.import_index(descriptor)

        for name in candidates:
            target = imports.get(name)
            if target is None:
                continue
            model = locate(target)
            if is_entity_type(model):
                return Resolution(model, STRATEGY_IMPORT)

        for name in candidates:
            model = locate(f"{model_namespace}.{name}")
            if is_entity_type(model):
                return Resolution(model, STRATEGY_NAMESPACE)

        raise EntityNotResolvableError(
            repository,
            f"Tried names: {', '.join(candidates)}; Checked imports: {', '.join(imports)}",
            candidates=candidates,
            imports=list(imports),
            model_namespace=model_namespace,
        )

    def import_index(self, descriptor: RepositoryDescriptor) -> dict[str, str]:
        """Import index of the repository's module, parsed once per repository."""
        key = (descriptor.module_name or "", descriptor.repository_type_name)
        if key in self._imports:
            return self._imports[key]

        index: dict[str, str] = {}
        module = sys.modules.get(descriptor.module_name) if descriptor.module_name else None
        if module is not None:
            try:
                source = inspect.getsource(module)
            except (OSError, TypeError):
                source = None
            if source:
                index = parse_import_index(source, module.__package__)

        self._imports[key] = index
        return index

    def clear(self) -> None:
        """Forget cached import indices and resolutions."""
        self._imports.clear()
        self._resolved.clear()


@functools.lru_cache(maxsize=1)
def get_entity_resolver() -> EntityResolver:
    """Get or create the process-wide resolver."""
    return EntityResolver()
