"""Pipeline orchestration for a full recovery run."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .analyzers.manifest import ManifestDecoder
from .analyzers.modules import ModuleGraphExtractor
from .assets.catalog import build_catalog, load_bundle_configs, merged_dictionary
from .assets.reconcile import AssetReconciler, referenced_identifiers, script_modules
from .assets.scanner import scan_resource_tree
from .config import ConfigError, RecoveryConfig, load_config
from .context import RecoveryContext
from .errors import FatalStructuralError
from .identifiers import IdentifierResolver
from .layout import BuildLayout, detect_layout
from .logging import get_logger
from .models import Diagnostic
from .project.writer import ProjectWriter
from .reconstruct import SourceReconstructor
from .result import RecoveryResult


class RecoveryPipeline:
    """Runs detection, decoding, reconstruction and reconciliation for one build."""

    def __init__(
        self,
        *,
        config: RecoveryConfig | None = None,
        config_path: Path | None = None,
        workers: int | None = None,
        writer_factory: Callable[[Path], ProjectWriter] = ProjectWriter,
    ) -> None:
        self._config = config
        self._config_path = config_path
        self._workers = workers
        self._writer_factory = writer_factory
        self.logger = get_logger("pipeline")

    def run(
        self,
        source: str | Path,
        output: str | Path | None = None,
        *,
        layout_hint: str | None = None,
        write: bool = True,
    ) -> RecoveryResult:
        """Recover the build under ``source``; writes the project when ``output`` is given."""
        source_path = Path(source).expanduser().resolve()
        self.logger.info("Starting recovery of %s", source_path)
        config = self._load_config(source_path)
        if self._workers is not None:
            config = replace(config, workers=self._workers)

        try:
            paths = detect_layout(source_path, layout_hint or config.layout)
        except ValueError as exc:
            raise FatalStructuralError(str(exc)) from exc
        diagnostics: List[Diagnostic] = []

        with self._stage("manifest"):
            decoder = ManifestDecoder(
                namespaces=config.settings_namespaces,
                dictionary_keys=config.dictionary_keys,
            )
            settings_outcome = decoder.decode(self._read_text(paths.manifest), paths.layout)
            diagnostics.extend(settings_outcome.diagnostics)
            settings = settings_outcome.value

            bundles_outcome = load_bundle_configs(paths.bundle_configs())
            diagnostics.extend(bundles_outcome.diagnostics)
            bundles = bundles_outcome.value

            dictionary: List[str] = list(settings.dictionary)
            if not dictionary and paths.layout is BuildLayout.BUNDLED and bundles:
                dictionary = merged_dictionary(bundles)
                self.logger.debug(
                    "Merged %d identifiers from %d bundle configs", len(dictionary), len(bundles)
                )
            resolver = IdentifierResolver(dictionary)
            if resolver.duplicates:
                self.logger.debug("Dictionary repeats %d identifiers", len(resolver.duplicates))

        context = RecoveryContext(paths=paths, config=config, settings=settings, resolver=resolver)

        with self._stage("modules"):
            graph_outcome = ModuleGraphExtractor(resolver).extract(self._read_bytes(paths.bundle))
            diagnostics.extend(graph_outcome.diagnostics)
            graph = graph_outcome.value

        with self._stage("reconstruct"):
            reconstructor = SourceReconstructor(
                graph,
                resolver,
                scripts_dir=config.scripts_dir,
                component_callees=config.component_callees,
            )
            units_outcome = reconstructor.reconstruct_all(workers=config.workers)
            diagnostics.extend(units_outcome.diagnostics)

        with self._stage("assets"):
            listing = scan_resource_tree(paths.resources, config.exclude_paths)
            catalog_outcome = build_catalog(settings, resolver, bundles)
            diagnostics.extend(catalog_outcome.diagnostics)
            catalog = catalog_outcome.value
            reconciler = AssetReconciler(config.reconcile.kind_priority, workers=config.workers)
            table_outcome = reconciler.reconcile(
                listing,
                referenced_identifiers(resolver.identifiers, catalog, graph),
                catalog,
                script_modules(graph),
            )
            diagnostics.extend(table_outcome.diagnostics)

        result = RecoveryResult(
            context=context,
            graph=graph,
            units=units_outcome.value,
            assignments=table_outcome.value,
            catalog=catalog,
            diagnostics=diagnostics,
        )

        if write and output is not None:
            with self._stage("write"):
                self._writer_factory(Path(output)).write(result)

        self._log_diagnostics(result)
        self.logger.info(
            "Recovered %d modules and %d assignments (%d diagnostics)",
            len(result.units),
            len(result.assignments),
            len(result.diagnostics),
        )
        return result

    # ------------------------------------------------------------------
    # Helpers

    def _load_config(self, source_path: Path) -> RecoveryConfig:
        if self._config is not None:
            return self._config
        if self._config_path is not None:
            return load_config(self._config_path)
        try:
            return load_config(source_path)
        except ConfigError as exc:
            self.logger.warning("Ignoring invalid configuration in %s: %s", source_path, exc)
            return RecoveryConfig(root=source_path)

    @staticmethod
    def _read_bytes(path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FatalStructuralError(f"Could not read {path}: {exc}") from exc

    def _read_text(self, path: Path) -> str:
        return self._read_bytes(path).decode("utf-8", errors="replace")

    @contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        started = time.perf_counter()
        yield
        self.logger.debug("Stage %s finished in %.3fs", name, time.perf_counter() - started)

    def _log_diagnostics(self, result: RecoveryResult) -> None:
        for item in result.diagnostics:
            subject = f" [{item.subject}]" if item.subject else ""
            self.logger.warning("%s/%s%s: %s", item.kind.value, item.code, subject, item.message)


def recover(
    source: str | Path,
    output: str | Path | None = None,
    *,
    layout_hint: Optional[str] = None,
    write: bool = True,
) -> RecoveryResult:
    """Convenience wrapper around RecoveryPipeline.run with default settings."""
    return RecoveryPipeline().run(source, output, layout_hint=layout_hint, write=write)


__all__ = ["RecoveryPipeline", "recover"]
