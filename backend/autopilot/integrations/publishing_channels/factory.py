import importlib
import logging
import pkgutil
from types import ModuleType
from typing import Iterable

from sqlalchemy.orm import Session

from autopilot.integrations.publishing_channels.base_adapter import AdapterResolutionError, BasePublishingChannel

logger = logging.getLogger(__name__)

_DISCOVERED = False
_CHANNEL_REGISTRY: dict[str, type[BasePublishingChannel]] = {}
_SKIP_MODULES = {"base_adapter", "factory"}
_PACKAGE_NAME = "autopilot.integrations.publishing_channels"


def _iter_subclasses(root: type[BasePublishingChannel]) -> Iterable[type[BasePublishingChannel]]:
    for subclass in root.__subclasses__():
        yield subclass
        yield from _iter_subclasses(subclass)


def _discover_channel_modules() -> None:
    package = importlib.import_module(_PACKAGE_NAME)
    if not isinstance(package, ModuleType) or not hasattr(package, "__path__"):
        return

    for module_info in pkgutil.iter_modules(package.__path__, prefix=f"{_PACKAGE_NAME}."):
        module_name = module_info.name.rsplit(".", 1)[-1]
        if module_name in _SKIP_MODULES:
            continue
        try:
            importlib.import_module(module_info.name)
        except Exception as exc:
            logger.warning(
                "publishing_channel_module_skip module=%s reason=%s",
                module_info.name,
                exc,
            )


def _load_registry() -> dict[str, type[BasePublishingChannel]]:
    global _DISCOVERED
    if _DISCOVERED and _CHANNEL_REGISTRY:
        return _CHANNEL_REGISTRY

    _discover_channel_modules()
    discovered: dict[str, type[BasePublishingChannel]] = {}
    for channel_cls in _iter_subclasses(BasePublishingChannel):
        if channel_cls.__module__.split(".")[:3] != _PACKAGE_NAME.split("."):
            # Subclasses defined elsewhere (tests, scripts) are injected explicitly.
            continue
        content_type = (getattr(channel_cls, "content_type", "") or "").strip().lower()
        if not content_type:
            continue
        discovered[content_type] = channel_cls

    _CHANNEL_REGISTRY.clear()
    _CHANNEL_REGISTRY.update(discovered)
    _DISCOVERED = True
    logger.info(
        "publishing_channel_registry_loaded total=%s types=%s",
        len(_CHANNEL_REGISTRY),
        ",".join(sorted(_CHANNEL_REGISTRY.keys())),
    )
    return _CHANNEL_REGISTRY


def list_registered_channel_types() -> list[str]:
    return sorted(_load_registry().keys())


def get_publishing_channel(content_type: str, db: Session) -> BasePublishingChannel:
    normalized_type = str(content_type).strip().lower()
    registry = _load_registry()
    channel_cls = registry.get(normalized_type)
    if channel_cls is None:
        logger.error(
            "publishing_channel_resolution_failed content_type=%s available_types=%s",
            normalized_type,
            ",".join(sorted(registry.keys())),
        )
        raise AdapterResolutionError(f"Unsupported publishing channel: {normalized_type}")

    logger.info(
        "publishing_channel_resolved content_type=%s channel=%s",
        normalized_type,
        channel_cls.__name__,
    )
    return channel_cls(db)
