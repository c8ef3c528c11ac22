"""Named repository handles."""

from worksync.repos.registry import RegistryError, RepositoryRegistry, build_registry

__all__ = ["RegistryError", "RepositoryRegistry", "build_registry"]
