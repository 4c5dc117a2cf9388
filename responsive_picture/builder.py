"""High-level orchestration of the responsive image pipeline."""

from __future__ import annotations

import asyncio
import logging
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .adapters import Adapter, resolve_converter, resolve_resizer, resolve_transformer
from .config import PipelineContext, ResponsiveImageOptions, load_options
from .conversion import apply_conversions
from .errors import AdapterFailure, ResponsivePictureError, UnsupportedSourceTypeError
from .markup import enhance, prune_missing_derivatives, replace_url_placeholders
from .models import ConversionWork, ResizeWork, TransformationWork
from .parsing import ParsedDocument, TagExtractor, parse
from .properties import guard_against_reserved_alias
from .resizing import apply_resizes
from .transformation import apply_transformations
from .utils import add_hash_to_uri

logger = logging.getLogger("responsive_picture.builder")

Document = Tuple[str, str]
WorkItem = Union[TransformationWork, ResizeWork, ConversionWork]


@dataclass
class DocumentResult:
    """Outcome of one markup document of a build."""

    context_dir: str
    markup: Optional[str] = None
    error: Optional[ResponsivePictureError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class StageMetrics:
    """Counters for one pipeline stage."""

    name: str
    generated: int = 0
    skipped: int = 0
    failed: int = 0
    seconds: float = 0.0


@dataclass
class _PendingDocument:
    result: DocumentResult
    document: ParsedDocument
    transformations: List[TransformationWork] = field(default_factory=list)


class ResponsiveImageBuilder:
    """Turns responsive image directives into ``<picture>`` elements.

    Derivatives are written to ``output_root`` under their hashed URI. The
    URI map is kept across builds, so a derivative requested again (from the
    same or another document) is only generated once.
    """

    def __init__(
        self,
        options: Union[ResponsiveImageOptions, Mapping[str, Any], None],
        output_root: Path,
        tag_extractor: Optional[TagExtractor] = None,
    ) -> None:
        if not isinstance(options, ResponsiveImageOptions):
            options = load_options(options)
        else:
            guard_against_reserved_alias(options.viewport_aliases)

        self.output_root = Path(output_root)
        self.tag_extractor = tag_extractor
        self._temp_dir = tempfile.TemporaryDirectory(prefix="responsive-picture-")
        self.context = PipelineContext(options=options, temp_dir=Path(self._temp_dir.name))

        self.transformer = resolve_transformer(options.art_direction.transformer)
        self.resizer = resolve_resizer(options.resolution_switching.resizer)
        self.converter = resolve_converter(options.conversion.converter)

        self.url_map: Dict[str, str] = {}
        self._in_flight: Set[str] = set()
        self.metrics: List[StageMetrics] = []

    @property
    def options(self) -> ResponsiveImageOptions:
        return self.context.options

    def close(self) -> None:
        self._temp_dir.cleanup()

    def __enter__(self) -> "ResponsiveImageBuilder":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    async def process_markup(self, markup: str, context_dir: str) -> str:
        """Process a single document, raising its error if it fails."""
        (result,) = await self.build([(markup, context_dir)])
        if result.error is not None:
            raise result.error
        return result.markup or ""

    async def build(self, documents: Sequence[Document]) -> List[DocumentResult]:
        """Run every stage over a batch of ``(markup, context_dir)`` documents."""
        results: List[DocumentResult] = []
        pending: List[_PendingDocument] = []

        for markup, context_dir in documents:
            result = DocumentResult(context_dir=context_dir)
            results.append(result)
            try:
                pending.append(self._prepare(markup, context_dir, result))
            except ResponsivePictureError as exc:
                logger.error("Could not process document in %s: %s", context_dir, exc)
                result.error = exc

        await self._run_stage(
            "transformation",
            self.transformer,
            [work for item in pending for work in item.transformations],
            self._transform,
        )

        resizes: List[ResizeWork] = []
        for item in pending:
            for image in item.document.images:
                try:
                    resizes.extend(apply_resizes(image, self.context))
                except OSError as exc:
                    logger.error("Could not read %s: %s", image.original_path, exc)
                    image.sources = []
        await self._run_stage("resize", self.resizer, resizes, self._resize)

        conversions: List[ConversionWork] = []
        for item in pending:
            for image in item.document.images:
                try:
                    conversions.extend(apply_conversions(image, self.context))
                except (UnsupportedSourceTypeError, OSError) as exc:
                    logger.error("Leaving %s untouched: %s", image.original_path, exc)
                    image.sources = []
        await self._run_stage("conversion", self.converter, conversions, self._convert)

        for item in pending:
            try:
                item.result.markup = self._assemble(item.document)
            except ResponsivePictureError as exc:
                logger.error("Could not assemble document in %s: %s", item.result.context_dir, exc)
                item.result.error = exc

        return results

    def _prepare(self, markup: str, context_dir: str, result: DocumentResult) -> _PendingDocument:
        options = self.options
        document = parse(
            markup,
            context_dir,
            default_size=options.default_size,
            viewport_aliases=options.viewport_aliases,
            path_aliases=options.paths.aliases,
            extractor=self.tag_extractor,
        )
        pending = _PendingDocument(result=result, document=document)
        for image in document.images:
            pending.transformations.extend(apply_transformations(image, self.context))
        return pending

    def _assemble(self, document: ParsedDocument) -> str:
        pruned = prune_missing_derivatives(document.images, self.url_map)
        if pruned:
            logger.warning("%d derivative(s) missing from the output", pruned)
        return replace_url_placeholders(enhance(document), self.url_map)

    async def _run_stage(
        self,
        name: str,
        adapter: Optional[Adapter],
        items: Sequence[WorkItem],
        run_item: Callable[[Adapter, Any], Awaitable[Tuple[str, bytes]]],
    ) -> None:
        metrics = StageMetrics(name=name)
        self.metrics.append(metrics)

        claimed: List[WorkItem] = []
        for item in items if adapter is not None else []:
            if item.uri in self.url_map or item.uri in self._in_flight:
                metrics.skipped += 1
                continue
            self._in_flight.add(item.uri)
            claimed.append(item)

        if not claimed:
            logger.info("No %s to process, skipping...", name)
            return

        logger.info("Initializing %s of %d image(s)...", name, len(claimed))
        start = time.perf_counter()
        await adapter.run_setup()
        try:
            outcomes = await asyncio.gather(
                *(self._generate(item.uri, run_item(adapter, item)) for item in claimed)
            )
        finally:
            await adapter.run_teardown()

        metrics.generated = sum(outcomes)
        metrics.failed = len(outcomes) - metrics.generated
        metrics.seconds = time.perf_counter() - start
        logger.info(
            "Completed %s in %.2fs (%d generated, %d failed, %d skipped)!",
            name,
            metrics.seconds,
            metrics.generated,
            metrics.failed,
            metrics.skipped,
        )

    async def _generate(self, uri: str, call: Awaitable[Tuple[str, bytes]]) -> bool:
        try:
            target_path, data = await call
            self._emit(uri, target_path, data)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("%s", AdapterFailure(uri, exc))
            return False
        finally:
            self._in_flight.discard(uri)
        return True

    def _emit(self, uri: str, target_path: str, data: bytes) -> None:
        # The temporary copy is what the following stages read
        target = Path(target_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

        hashed_uri = add_hash_to_uri(uri, data)
        output_path = self.output_root / hashed_uri.lstrip("/")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(data)

        self.url_map[uri] = hashed_uri
        logger.debug("Generated %s", hashed_uri)

    @staticmethod
    async def _transform(adapter: Adapter, work: TransformationWork) -> Tuple[str, bytes]:
        return work.source.path, await adapter(work.source_path, work.descriptor)

    @staticmethod
    async def _resize(adapter: Adapter, work: ResizeWork) -> Tuple[str, bytes]:
        return work.breakpoint.path, await adapter(work.source_path, work.breakpoint)

    @staticmethod
    async def _convert(adapter: Adapter, work: ConversionWork) -> Tuple[str, bytes]:
        return work.target_path, await adapter(work.source_path, work.format)
