"""
Exposure catalog for pymirror.

The catalog owns the descriptors an exposer advertises and the dispatch
registry the call receiver invokes through. It is populated by ``prepare``
before serving and read-only afterwards, so one catalog can back any number
of concurrent request handlers.
"""

import logging
from types import ModuleType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .descriptors import (
    CallableDescriptor, ClassDescriptor, ExposurePage, FunctionDescriptor, MethodDescriptor,
)
from .reflect import describe, resolve_callable
from .serialize import TypeRegistry

logger = logging.getLogger(__name__)


class ExposureCatalog:
    """
    An ordered, paginated collection of exposed callables.

    Pages are 1-based and hold exactly one descriptor each: functions first,
    in registration order, then classes.
    """

    def __init__(self, registry: Optional[TypeRegistry] = None):
        self.exposed_functions: List[FunctionDescriptor] = []
        self.exposed_classes: List[ClassDescriptor] = []
        self.registry = registry if registry is not None else TypeRegistry()
        self._functions: Dict[str, Callable[..., Any]] = {}
        self._classes: Dict[str, type] = {}
        self._methods: Dict[Tuple[str, str], MethodDescriptor] = {}

    def prepare(self, target: Union[str, Any],
                namespace: Optional[Union[ModuleType, Mapping[str, Any]]] = None) -> Optional[CallableDescriptor]:
        """
        Describe a class or function and add it to the catalog.

        ``target`` is the object itself or a name resolved through
        ``namespace`` or as a dotted import path. Names that resolve to
        neither a class nor a function are ignored.
        """
        obj = resolve_callable(target, namespace)
        descriptor = describe(obj) if obj is not None else None
        if descriptor is None:
            logger.debug(f"Nothing to expose for {target!r}")
            return None

        if isinstance(descriptor, ClassDescriptor):
            self.exposed_classes.append(descriptor)
            self._classes[descriptor.name] = obj
            for method in descriptor.methods:
                self._methods[(descriptor.name, method.name)] = method
            self.registry.register(obj, descriptor.name)
        else:
            self.exposed_functions.append(descriptor)
            self._functions[descriptor.name] = obj

        logger.info(f"Exposing {descriptor.kind} {descriptor.name}")
        return descriptor

    def prepare_all(self, *targets: Any) -> 'ExposureCatalog':
        for target in targets:
            self.prepare(target)
        return self

    def exposed(self, target: Any) -> Any:
        """Class and function decorator form of ``prepare``."""
        self.prepare(target)
        return target

    @property
    def total_pages(self) -> int:
        return len(self.exposed_functions) + len(self.exposed_classes)

    def serve_page(self, page: int) -> ExposurePage:
        """
        Return the descriptor on ``page``.

        Out-of-range pages come back with no element rather than raising.
        """
        total_functions = len(self.exposed_functions)
        total_pages = self.total_pages

        element: Optional[CallableDescriptor] = None
        if 1 <= page <= total_functions:
            element = self.exposed_functions[page - 1]
        elif total_functions < page <= total_pages:
            element = self.exposed_classes[page - total_functions - 1]

        return ExposurePage(page=page, total_pages=total_pages, element=element)

    def lookup_function(self, name: str) -> Optional[Callable[..., Any]]:
        return self._functions.get(name)

    def lookup_class(self, name: str) -> Optional[type]:
        return self._classes.get(name)

    def lookup_method(self, class_name: str, method_name: str) -> Optional[MethodDescriptor]:
        return self._methods.get((class_name, method_name))

    def clear(self) -> None:
        """Forget every exposed callable."""
        self.exposed_functions.clear()
        self.exposed_classes.clear()
        self._functions.clear()
        self._classes.clear()
        self._methods.clear()
        self.registry.clear()
