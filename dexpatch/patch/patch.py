"""
Patch definitions, and the runner that applies them to a set of classes.

Compatibility lists and dependencies between patches are plain configuration of the
:py:class:`BytecodePatch` objects, handed to a :py:class:`PatchRunner`. Nothing is registered globally.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import os
import typing

import attrs
import rich.table

from dexpatch.patch.fingerprint import MethodFingerprint, MethodMatch
from dexpatch.tools.dex.method import ClassDef, Method
from dexpatch.utils import rich_helpers

TARGET_VERSION_ENV: typing.Final[str] = 'DEXPATCH_TARGET_VERSION'
"""Environment variable holding the default target application version of :py:class:`PatchRunner`."""

class PatchContext:
    """
    The classes being patched.

    Resolved method fingerprints are cached for the lifetime of the context, so that a method is still found after
    a patch changed what the fingerprint looks at (*e.g.* its access flags).
    Only the method is cached. The position of the opcode pattern is computed again on each :py:meth:`resolve`.
    """
    def __init__(self, classes: typing.Iterable[ClassDef]) -> None:
        self.classes: typing.Final[list[ClassDef]] = list(classes)
        self._resolved: dict[MethodFingerprint, tuple[ClassDef, Method]] = {}

    def find_class(self, type: str) -> ClassDef | None: # pylint: disable=redefined-builtin
        return next((classdef for classdef in self.classes if classdef.type == type), None)

    def resolve(self, fingerprint: MethodFingerprint) -> MethodMatch:
        """
        :raises dexpatch.patch.errors.PatternNotFoundError: If the fingerprint matches no method.
        """
        if (cached := self._resolved.get(fingerprint)) is None:
            matched = fingerprint.resolve(self.classes)
            self._resolved[fingerprint] = (matched.classdef, matched.method)
            return matched
        classdef, method = cached
        return MethodMatch(classdef=classdef, method=method, pattern_index=fingerprint.pattern_index(method))

    def method(self, fingerprint: MethodFingerprint) -> Method:
        return self.resolve(fingerprint).method

def _compatibility(value: typing.Mapping[str, typing.Iterable[str] | None]) -> dict[str, tuple[str, ...] | None]:
    return {package: (tuple(versions) if versions is not None else None) for package, versions in value.items()}

@attrs.define(frozen=True, slots=True, kw_only=True, eq=False)
class BytecodePatch:
    """
    A patch.

    :py:attr:`compatible_with` maps package names to the supported versions, :py:obj:`None` meaning any version.
    A patch without compatibility information applies to any package.
    """
    name: str
    description: str = ''
    execute: typing.Callable[[PatchContext], None]
    compatible_with: dict[str, tuple[str, ...] | None] = attrs.field(factory=dict, converter=_compatibility)
    depends_on: tuple[BytecodePatch, ...] = attrs.field(default=(), converter=tuple)
    use: bool = True
    """Whether the patch is applied when it is not explicitly selected. Dependencies are applied regardless."""

    def is_compatible(self, package: str | None, version: str | None) -> bool:
        if not self.compatible_with:
            return True
        if package is None or package not in self.compatible_with:
            return False
        versions = self.compatible_with[package]
        return versions is None or version is None or version in versions

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.name!r})'

def bytecode_patch(
    *,
    name: str,
    description: str = '',
    compatible_with: typing.Mapping[str, typing.Iterable[str] | None] | None = None,
    depends_on: typing.Iterable[BytecodePatch] = (),
    use: bool = True,
) -> typing.Callable[[typing.Callable[[PatchContext], None]], BytecodePatch]:
    """
    Decorate the function that executes a patch.

    >>> from dexpatch.patch.patch import bytecode_patch
    >>> @bytecode_patch(name='Nothing', compatible_with={'com.example': ('1.0',)})
    ... def nothing(context):
    ...     pass
    >>> nothing.is_compatible('com.example', '2.0')
    False
    """
    def decorator(execute: typing.Callable[[PatchContext], None]) -> BytecodePatch:
        return BytecodePatch(
            name=name,
            description=description or (execute.__doc__ or '').strip(),
            execute=execute,
            compatible_with=compatible_with or {},
            depends_on=depends_on,
            use=use,
        )
    return decorator

class PatchStatus(enum.Enum):
    APPLIED = 'applied'
    SKIPPED = 'skipped'
    FAILED = 'failed'

@dataclasses.dataclass(frozen=True, slots=True)
class PatchResult:
    patch: BytecodePatch
    status: PatchStatus
    error: BaseException | None = None
    reason: str | None = None

@dataclasses.dataclass(slots=True)
class PatchReport(rich_helpers.TableMixin):
    results: list[PatchResult] = dataclasses.field(default_factory=list)

    def __getitem__(self, name: str) -> PatchResult:
        for result in self.results:
            if result.patch.name == name:
                return result
        raise KeyError(name)

    @property
    def succeeded(self) -> bool:
        return all(result.status is not PatchStatus.FAILED for result in self.results)

    def to_table(self) -> rich.table.Table:
        rt = rich.table.Table()
        rt.add_column('Patch')
        rt.add_column('Status')
        rt.add_column('Details', overflow='fold')
        for result in self.results:
            details = str(result.error) if result.error is not None else (result.reason or '')
            rt.add_row(result.patch.name, result.status.value, rich_helpers.verbatim(details))
        return rt

def dependency_order(patches: typing.Iterable[BytecodePatch]) -> list[BytecodePatch]:
    """
    Order `patches` and their dependencies so that each patch comes after its dependencies.

    Each patch appears once. Otherwise, the order of `patches` is kept.

    :raises ValueError: If the dependencies form a cycle.
    """
    ordered: list[BytecodePatch] = []
    done: set[int] = set()
    visiting: list[BytecodePatch] = []

    def visit(patch: BytecodePatch) -> None:
        if id(patch) in done:
            return
        if any(patch is other for other in visiting):
            cycle = ' -> '.join(p.name for p in (*visiting, patch))
            raise ValueError(f'Patch dependency cycle: {cycle}.')
        visiting.append(patch)
        for dependency in patch.depends_on:
            visit(dependency)
        visiting.pop()
        done.add(id(patch))
        ordered.append(patch)

    for patch in patches:
        visit(patch)
    return ordered

@attrs.define(kw_only=True)
class PatchRunner:
    """
    Apply patches to :py:attr:`context`, dependencies first.

    Incompatible patches are skipped, and so are the patches that depend on a patch that was skipped or that failed.
    If :py:attr:`fail_fast` is :py:obj:`True`, the first error propagates. Otherwise, it is recorded in the report.
    """
    context: PatchContext
    package: str | None = None
    version: str | None = attrs.field(factory=lambda: os.environ.get(TARGET_VERSION_ENV))
    fail_fast: bool = True

    def run(self, patches: typing.Iterable[BytecodePatch], selected: typing.Iterable[str] | None = None) -> PatchReport:
        """
        Apply the patches named in `selected`, or those whose :py:attr:`BytecodePatch.use` is set if it is not given,
        along with their dependencies.
        """
        patches = list(patches)
        if selected is None:
            chosen = [patch for patch in patches if patch.use]
        else:
            names = set(selected)
            if unknown := names - {patch.name for patch in patches}:
                raise ValueError(f'Unknown patch(es) {sorted(unknown)}.')
            chosen = [patch for patch in patches if patch.name in names]

        report = PatchReport()
        statuses: dict[int, PatchStatus] = {}

        for patch in dependency_order(chosen):
            result = self._apply(patch, statuses)
            statuses[id(patch)] = result.status
            report.results.append(result)

        return report

    def _apply(self, patch: BytecodePatch, statuses: dict[int, PatchStatus]) -> PatchResult:
        if not patch.is_compatible(self.package, self.version):
            logging.warning(f'Skipping patch {patch.name!r}, which is not compatible with {self.package} {self.version}.')
            return PatchResult(patch=patch, status=PatchStatus.SKIPPED, reason=f'incompatible with {self.package} {self.version}')

        if (blocked := [d.name for d in patch.depends_on if statuses.get(id(d)) is not PatchStatus.APPLIED]):
            logging.warning(f'Skipping patch {patch.name!r}, whose dependencies {blocked} were not applied.')
            return PatchResult(patch=patch, status=PatchStatus.SKIPPED, reason=f'dependencies not applied: {", ".join(blocked)}')

        logging.info(f'Applying patch {patch.name!r}.')
        try:
            patch.execute(self.context)
        except Exception as e: # pylint: disable=broad-exception-caught
            if self.fail_fast:
                raise
            logging.error(f'Patch {patch.name!r} failed: {e}')
            return PatchResult(patch=patch, status=PatchStatus.FAILED, error=e)
        return PatchResult(patch=patch, status=PatchStatus.APPLIED)
