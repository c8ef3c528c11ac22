"""Repository registry — named working copies loaded from YAML."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from worksync.git.models import RepositoryHandle


class RegistryError(Exception):
    """Raised when the repositories file is malformed."""


class RepositoryRegistry:
    """Alias → RepositoryHandle lookup."""

    def __init__(self) -> None:
        self._repos: Dict[str, RepositoryHandle] = {}

    # ---- registration ----

    def register(self, alias: str, handle: RepositoryHandle) -> None:
        self._repos[alias] = handle

    # ---- queries ----

    @property
    def aliases(self) -> List[str]:
        return sorted(self._repos)

    def get(self, alias: str) -> Optional[RepositoryHandle]:
        return self._repos.get(alias)

    def resolve(self, target: str) -> RepositoryHandle:
        """Return the handle registered as *target*, else treat it as a local path."""
        handle = self.get(target)
        if handle is not None:
            return handle
        path = Path(target).expanduser().resolve()
        return RepositoryHandle(provider="local", owner="", name=path.name, path=str(path))

    # ---- loading ----

    def load_file(self, path: Path) -> int:
        """Load handles from a YAML file. Returns count loaded."""
        if not path.is_file():
            return 0
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise RegistryError(f"Failed to read {path}: {exc}") from exc

        if data is None:
            return 0
        if isinstance(data, dict):
            entries = list(_flatten_grouped(data))
        elif isinstance(data, list):
            entries = data
        else:
            raise RegistryError(f"{path}: expected a list or a provider mapping")

        count = 0
        for entry in entries:
            alias, handle = _entry_to_handle(entry, path)
            self.register(alias, handle)
            count += 1
        return count


def _flatten_grouped(data: Dict[str, Any]):
    """Yield entries from ``{provider: {group: [repo, ...]}}``."""
    for provider, groups in data.items():
        if not isinstance(groups, dict):
            raise RegistryError(f"provider {provider!r} must map groups to lists")
        for group, repos in groups.items():
            for repo in repos or []:
                if not isinstance(repo, dict):
                    raise RegistryError(f"{provider}/{group}: entries must be mappings")
                entry = dict(repo)
                entry.setdefault("provider", provider)
                entry.setdefault("owner", group)
                yield entry


def _entry_to_handle(entry: Any, source: Path) -> tuple[str, RepositoryHandle]:
    if not isinstance(entry, dict) or "name" not in entry:
        raise RegistryError(f"{source}: every repository needs at least a 'name'")
    name = str(entry["name"])
    owner = str(entry.get("owner", ""))
    handle = RepositoryHandle(
        provider=str(entry.get("provider", "local")),
        owner=owner,
        name=name,
        path=str(Path(entry["path"]).expanduser()) if entry.get("path") else "",
        clone_url=entry.get("clone_url"),
    )
    alias = str(entry.get("alias") or handle.full_name)
    return alias, handle


def build_registry(repos_file: str, base_dir: Optional[Path] = None) -> RepositoryRegistry:
    """Create a registry from *repos_file*, resolved relative to *base_dir*."""
    registry = RepositoryRegistry()
    path = Path(repos_file).expanduser()
    if not path.is_absolute():
        path = (base_dir or Path.cwd()) / path
    registry.load_file(path)
    return registry
