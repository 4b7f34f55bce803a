# =============================================================================
# apphost/core/modules.py - Module Registry, Discovery and Loaders
# =============================================================================
# A ModuleRegistry maps names to the artifacts an application is built from:
#
#   models   - name -> document model (api/models/<name>.py)
#   modules  - name -> ModuleEntry with optional model / service / router /
#              scheduler (api/modules/<name>/<kind>.py)
#   patches  - version id -> patch function (api/patches/<id>.py)
#
# An artifact is either a Path (imported when a loader needs it) or an
# already imported object. ModuleRegistry.discover() builds a registry by
# scanning an api/ directory; add_model/add_module/add_patch build one
# explicitly, without any import-by-path.
#
# Each artifact file exposes a module-level attribute named after its kind:
#
#   api/models/product.py            model = Product
#   api/modules/catalog/service.py   service = CatalogService()
#   api/modules/catalog/router.py    def router(app): ...
#   api/modules/catalog/scheduler.py def scheduler(app): ...
#   api/patches/3.py                 async def patch(app, logger): ...
# =============================================================================

from __future__ import annotations

import hashlib
import importlib.util
import inspect
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from apphost.exceptions import DiscoveryError, ModuleLoadError

if TYPE_CHECKING:
    from apphost.core.application import Application

logger = logging.getLogger(__name__)

MODULE_ARTIFACTS = ("model", "service", "router", "scheduler")


# =============================================================================
# Registry Types
# =============================================================================

@dataclass(frozen=True)
class ModuleEntry:
    """The artifacts one module contributes. Each one is optional."""
    name: str
    model: Any = None
    service: Any = None
    router: Any = None
    scheduler: Any = None


@dataclass(frozen=True)
class PatchScript:
    """A versioned one-time data patch."""
    id: int
    artifact: Any

    @property
    def source(self) -> str:
        return str(self.artifact) if isinstance(self.artifact, Path) else getattr(self.artifact, "__name__", repr(self.artifact))


class ModuleRegistry:
    """
    Explicit mapping from names to models, modules and patches.

    Example:
        registry = (
            ModuleRegistry()
            .add_model("product", Product)
            .add_module("catalog", service=catalog_service, router=catalog_router)
            .add_patch(1, backfill_prices)
        )
        app = Application(app_dir, registry=registry)
    """

    def __init__(self):
        self.models: dict[str, Any] = {}
        self.modules: dict[str, ModuleEntry] = {}
        self._patches: dict[int, PatchScript] = {}

    def add_model(self, name: str, model: Any) -> ModuleRegistry:
        if name in self.models:
            raise DiscoveryError(name, f"model {name!r} is registered twice")
        self.models[name] = model
        return self

    def add_module(
        self,
        name: str,
        *,
        model: Any = None,
        service: Any = None,
        router: Any = None,
        scheduler: Any = None,
    ) -> ModuleRegistry:
        if name in self.modules:
            raise DiscoveryError(name, f"module {name!r} is registered twice")
        if model is not None:
            self.add_model(name, model)
        self.modules[name] = ModuleEntry(
            name=name,
            model=model,
            service=service,
            router=router,
            scheduler=scheduler,
        )
        return self

    def add_patch(self, patch_id: int, patch: Any) -> ModuleRegistry:
        if patch_id < 1:
            raise DiscoveryError(str(patch_id), "patch ids start at 1")
        if patch_id in self._patches:
            raise DiscoveryError(
                str(patch_id),
                f"patch {patch_id} is defined by both {self._patches[patch_id].source} and {patch}",
            )
        self._patches[patch_id] = PatchScript(id=patch_id, artifact=patch)
        return self

    @property
    def patches(self) -> list[PatchScript]:
        """Patch scripts in ascending id order."""
        return [self._patches[patch_id] for patch_id in sorted(self._patches)]

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    @classmethod
    def discover(cls, api_dir: Path) -> ModuleRegistry:
        """
        Build a registry from an application's api/ directory.

        Nothing is imported; artifacts are recorded as paths.

        Args:
            api_dir: Directory containing models/, modules/ and patches/

        Raises:
            DiscoveryError: If a directory cannot be read or a patch file
                name is not a positive integer
        """
        registry = cls()

        for entry in _scan(api_dir / "models"):
            if _is_artifact(entry):
                registry.add_model(Path(entry.name).stem, Path(entry.path))

        for entry in _scan(api_dir / "modules"):
            if not entry.is_dir() or entry.name.startswith(("_", ".")):
                continue
            artifacts = {
                Path(item.name).stem: Path(item.path)
                for item in _scan(Path(entry.path))
                if _is_artifact(item) and Path(item.name).stem in MODULE_ARTIFACTS
            }
            registry.add_module(entry.name, **artifacts)

        for entry in _scan(api_dir / "patches"):
            if not _is_artifact(entry):
                continue
            stem = Path(entry.name).stem
            try:
                patch_id = int(stem)
            except ValueError:
                raise DiscoveryError(entry.path, "patch file names must be integer version ids") from None
            registry.add_patch(patch_id, Path(entry.path))

        logger.debug(
            f"Discovered {len(registry.models)} models, {len(registry.modules)} modules "
            f"and {len(registry._patches)} patches in {api_dir}"
        )
        return registry


def _scan(path: Path) -> list[os.DirEntry]:
    """Sorted directory entries; a missing directory counts as empty."""
    try:
        with os.scandir(path) as it:
            return sorted(it, key=lambda entry: entry.name)
    except FileNotFoundError:
        return []
    except OSError as e:
        raise DiscoveryError(str(path), str(e)) from e


def _is_artifact(entry: os.DirEntry) -> bool:
    return entry.is_file() and entry.name.endswith(".py") and not entry.name.startswith(("_", "."))


# =============================================================================
# Artifact Import
# =============================================================================

def import_artifact(path: Path, kind: str) -> Any:
    """
    Import an artifact file and return the attribute named `kind`.

    The module is registered in sys.modules under a name unique to the file,
    so importing the same file again reuses the loaded module.

    Raises:
        ModuleLoadError: If the file fails to import or lacks the attribute
    """
    path = path.resolve()
    digest = hashlib.sha1(str(path).encode()).hexdigest()[:12]
    module_name = f"_apphost_{kind}_{path.stem}_{digest}"

    module = sys.modules.get(module_name)
    if module is None:
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ModuleLoadError(str(path), "not an importable Python file")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            del sys.modules[module_name]
            raise ModuleLoadError(str(path), f"{type(e).__name__}: {e}") from e

    try:
        return getattr(module, kind)
    except AttributeError:
        raise ModuleLoadError(str(path), f"module does not define `{kind}`") from None


def resolve_artifact(artifact: Any, kind: str) -> Any:
    """Import path artifacts; return already loaded objects unchanged."""
    if isinstance(artifact, Path):
        return import_artifact(artifact, kind)
    return artifact


def _init_hook(name: str, loaded: Any, kind: str) -> Callable:
    hook = getattr(loaded, "init", None)
    if not callable(hook):
        raise ModuleLoadError(f"{kind} {name}", "does not define init(app)")
    return hook


async def _call_hook(hook: Callable, *args: Any) -> Any:
    # Hooks may be plain functions or coroutines
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


# =============================================================================
# Loaders
# =============================================================================

async def load_models(app: Application, registry: ModuleRegistry) -> None:
    """
    Import every model, then call each model's init(app) hook.

    Models are initialized in registry order and must not depend on each
    other during init.
    """
    for name, artifact in registry.models.items():
        app.models[name] = resolve_artifact(artifact, "model")

    for name in registry.models:
        await _call_hook(_init_hook(name, app.models[name], "model"), app)
        app.app_logger.debug(f"Model {name} ready")


async def load_services(app: Application, registry: ModuleRegistry) -> None:
    """
    Import every service, then await each service's init(app) in order.

    Services are initialized one at a time: a service may rely on every
    service before it being fully initialized.
    """
    names = [name for name, entry in registry.modules.items() if entry.service is not None]

    for name in names:
        app.services[name] = resolve_artifact(registry.modules[name].service, "service")

    for name in names:
        await _call_hook(_init_hook(name, app.services[name], "service"), app)
        app.app_logger.debug(f"Service {name} ready")


async def load_routers(app: Application, registry: ModuleRegistry, include: Callable[[Any], None]) -> None:
    """
    Build each module's router with router(app) and hand it to `include`.

    Only used in web mode.
    """
    for name, entry in registry.modules.items():
        if entry.router is None:
            continue
        factory = resolve_artifact(entry.router, "router")
        include(await _call_hook(factory, app))
        app.app_logger.debug(f"Router {name} ready")


async def load_schedulers(app: Application, registry: ModuleRegistry) -> None:
    """
    Let each module register its periodic tasks on app.cron.

    Only used in cron mode.
    """
    for name, entry in registry.modules.items():
        if entry.scheduler is None:
            continue
        register = resolve_artifact(entry.scheduler, "scheduler")
        await _call_hook(register, app)
        app.app_logger.debug(f"Scheduled tasks of module {name} registered")
