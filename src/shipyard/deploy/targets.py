"""Deploy target resolution.

A target is an application, an engine's own server process, or one module
hosted by an engine. Targets are identified by a key: the app or engine
name, or ``engine/module`` for modules.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from shipyard.config.loader import ConfigLoader
from shipyard.lib.errors import TargetNotFoundError
from shipyard.models.app import AppConfig
from shipyard.models.engine import EngineConfig, ModuleConfig


class TargetKind(str, Enum):
    APP = "app"
    ENGINE = "engine"
    MODULE = "module"


@dataclass(frozen=True)
class Target:
    """A resolved deploy target with the descriptor(s) it came from."""

    kind: TargetKind
    app: AppConfig | None = None
    engine: EngineConfig | None = None
    module_name: str | None = None

    @classmethod
    def for_app(cls, app: AppConfig) -> Target:
        return cls(kind=TargetKind.APP, app=app)

    @classmethod
    def for_engine(cls, engine: EngineConfig) -> Target:
        return cls(kind=TargetKind.ENGINE, engine=engine)

    @classmethod
    def for_module(cls, engine: EngineConfig, module_name: str) -> Target:
        return cls(kind=TargetKind.MODULE, engine=engine, module_name=module_name)

    def __post_init__(self) -> None:
        if self.kind == TargetKind.APP:
            if self.app is None:
                raise ValueError("App target requires an app descriptor")
            return
        if self.engine is None:
            raise ValueError(f"{self.kind.value.title()} target requires an engine")
        if self.kind == TargetKind.MODULE and self.module_name not in self.engine.modules:
            raise ValueError(
                f"Engine {self.engine.name} has no module {self.module_name!r}"
            )

    @property
    def key(self) -> str:
        """Fully-qualified target identifier."""
        if self.app is not None:
            return self.app.name
        engine = self._require_engine()
        if self.module_name is not None:
            return engine.module_key(self.module_name)
        return engine.name

    @property
    def module(self) -> ModuleConfig | None:
        if self.kind != TargetKind.MODULE or self.engine is None:
            return None
        return self.engine.modules[self.module_name or ""]

    @property
    def branch(self) -> str:
        """Branch the target deploys from."""
        if self.app is not None:
            return self.app.branch
        module = self.module
        if module is not None:
            return module.branch
        return self._require_engine().server.branch

    def _require_engine(self) -> EngineConfig:
        if self.engine is None:
            raise ValueError(f"{self.kind.value.title()} target requires an engine")
        return self.engine


def resolve_target(
    loader: ConfigLoader, name: str, module: str | None = None
) -> Target:
    """Resolve a target by name.

    Without ``module``, the application namespace is checked first and then
    engines. ``name`` may also be given as ``engine/module``.

    Raises:
        TargetNotFoundError: If nothing matches
        ConfigError: If the matching descriptor is malformed
    """
    if module is None and "/" in name:
        name, module = name.split("/", 1)

    if module is not None:
        engine = loader.load_engine_config(name)
        if engine is None:
            raise TargetNotFoundError(name, "engine")
        if module not in engine.modules:
            raise TargetNotFoundError(f"{name}/{module}", "module")
        return Target.for_module(engine, module)

    app = loader.load_app_config(name)
    if app is not None:
        return Target.for_app(app)

    engine = loader.load_engine_config(name)
    if engine is not None:
        return Target.for_engine(engine)

    raise TargetNotFoundError(name)


_SCP_LIKE = re.compile(r"^(?:[^@/\s]+@)?[^:/\s]+:(?!//)(?P<path>.+)$")


def normalize_repo_url(url: str) -> str:
    """Reduce a repository URL to its ``owner/repo`` form.

    Handles scp-like SSH (``git@host:org/repo.git``), ``ssh://`` and
    ``https://`` URLs, with or without a ``.git`` suffix.

    Examples:
        >>> normalize_repo_url("git@github.com:org/api.git")
        'org/api'
        >>> normalize_repo_url("https://github.com/org/api")
        'org/api'
    """
    value = url.strip()
    if "://" in value:
        path = value.split("://", 1)[1]
        path = path.split("/", 1)[1] if "/" in path else ""
    else:
        match = _SCP_LIKE.match(value)
        path = match.group("path") if match else value

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return path


def repo_matches(url: str, full_name: str, name: str) -> bool:
    """Return True if ``url`` is the repository ``full_name`` (or ends in ``/name``)."""
    normalized = normalize_repo_url(url)
    if full_name and normalized.lower() == full_name.lower():
        return True
    return bool(name) and normalized.lower().endswith(f"/{name.lower()}")


def find_target_by_repo(
    loader: ConfigLoader, full_name: str, name: str
) -> Target | None:
    """Find the app or module whose repository matches a push payload.

    Applications are checked first, then engine modules with their own
    repository. Descriptors are loaded fresh on every call.
    """
    for app in loader.load_app_configs().configs.values():
        if repo_matches(app.repo, full_name, name):
            return Target.for_app(app)

    for engine in loader.load_engine_configs().configs.values():
        for module_name, module in engine.modules.items():
            if module.repo and repo_matches(module.repo, full_name, name):
                return Target.for_module(engine, module_name)

    return None
