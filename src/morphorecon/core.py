# src/morphorecon/core.py
from __future__ import annotations

# General imports (stdlib)
import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# Third-party imports
from tqdm import tqdm

# Local imports
from .config import Config
from .exceptions import StructuralError
from .io import ParsedReconstruction, discover_reconstructions, read_reconstruction
from .portal import reconstruction_document
from .structure import NodeCounts

logger = logging.getLogger(__name__)


@dataclass
class FileSummary:
    """Outcome of converting one reconstruction file."""
    source: Path
    outputs: List[Path] = field(default_factory=list)
    axon: Optional[NodeCounts] = None
    dendrite: Optional[NodeCounts] = None
    skipped: bool = False


class ReconstructionDiscovery:
    """Data access for reconstruction files."""

    def __init__(self, cfg: Config) -> None:
        self.cfg = cfg

    def discover(self) -> List[Path]:
        """
        Find SWC and JSON files under the configured directory.

        The output directory is excluded so converted documents are never
        picked up as inputs.

        Raises:
            DataNotFound: If no reconstruction files can be found.
        """
        return discover_reconstructions(
            self.cfg.pathing.directory,
            self.cfg.pathing.swc_suffix,
            self.cfg.pathing.json_suffix,
            exclude=self.cfg.pathing.output_directory,
        )


class Converter:
    """Per-file conversion: parse, renumber, paginate, write."""

    def __init__(self, cfg: Config) -> None:
        self.cfg = cfg

    def output_paths(self, source: Path, n_pages: int = 1) -> List[Path]:
        """
        Output files for `source`, mirroring its folder below the data directory.

        Single documents are named `<stem>_<format>.json`; paged documents
        `<stem>_<format>-0001.json`, `-0002`, ...
        """
        rel = source.parent.relative_to(self.cfg.pathing.directory)
        out_dir = Path(self.cfg.pathing.output_directory) / rel
        base = f"{source.stem}_{source.suffix.lstrip('.')}"

        if self.cfg.processing.page_size is None:
            return [out_dir / f"{base}.json"]
        return [out_dir / f"{base}-{page:04d}.json" for page in range(1, n_pages + 1)]

    def convert(self, source: Path) -> FileSummary:
        """
        Convert one reconstruction file into portal JSON document(s).

        Args:
            source (Path): SWC or JSON reconstruction file.

        Returns:
            FileSummary: Written outputs and node counts, or a skipped summary
                when outputs exist and overwriting is disabled.

        Raises:
            StructuralError: If the file cannot be parsed.
        """
        # Skip files whose first output is already present
        if not self.cfg.processing.overwrite and self.output_paths(source)[0].exists():
            logger.info("Skipping %s; output exists", source)
            return FileSummary(source=source, skipped=True)

        try:
            parsed = read_reconstruction(
                source,
                chunked=self.cfg.processing.chunked_json,
                json_suffix=self.cfg.pathing.json_suffix,
            )
        except StructuralError as e:
            raise StructuralError(f"Failed to parse '{source}': {e}") from e

        documents = self.build_documents(parsed, source.stem)
        outputs = self.output_paths(source, len(documents))
        for document, out in zip(documents, outputs):
            self._write_json(document, out)

        summary = FileSummary(
            source=source,
            outputs=outputs,
            axon=parsed.axon.counts if parsed.axon is not None else None,
            dendrite=parsed.dendrite.counts if parsed.dendrite is not None else None,
        )
        logger.info(
            "Converted %s: axon %s, dendrite %s",
            source.name,
            summary.axon.as_dict() if summary.axon else None,
            summary.dendrite.as_dict() if summary.dendrite else None,
        )
        return summary

    def build_documents(self, parsed: ParsedReconstruction, id_string: str) -> List[Dict[str, Any]]:
        """
        Build the portal document(s) for a parsed reconstruction.

        One document without chunk information when paging is disabled;
        otherwise one document per page, enough pages to cover the larger of
        the two structures.
        """
        page_size = self.cfg.processing.page_size

        if page_size is None:
            return [reconstruction_document(parsed.axon, parsed.dendrite, parsed.comments, id_string)]

        sizes = [len(g) for g in (parsed.axon, parsed.dendrite) if g is not None]
        n_pages = max(1, math.ceil(max(sizes, default=0) / page_size))

        return [
            reconstruction_document(
                parsed.axon,
                parsed.dendrite,
                parsed.comments,
                id_string,
                offset=page * page_size,
                limit=page_size,
            )
            for page in range(n_pages)
        ]

    def _write_json(self, document: Dict[str, Any], out: Path) -> None:
        # Atomic write: temp file, fsync, replace
        out.parent.mkdir(parents=True, exist_ok=True)
        tmp = out.with_suffix(out.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=self.cfg.parameters.indent)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, out)


class ConversionPipeline:
    """High-level orchestrator. Minimal logic here; compose replaceable parts."""

    def __init__(
        self,
        cfg: Config,
        repo: ReconstructionDiscovery | None = None,
        converter: Converter | None = None,
    ) -> None:
        """
        Args:
            cfg (Config): Global configuration used across the pipeline.
            repo (ReconstructionDiscovery | None): Optional custom file discovery.
            converter (Converter | None): Optional custom per-file converter.
        """
        self.cfg = cfg
        self.repo = repo or ReconstructionDiscovery(cfg)
        self.converter = converter or Converter(cfg)

    def run(self, progress_cb: Optional[Callable[[int, int], None]] = None) -> List[FileSummary]:
        """
        Convert every discovered reconstruction file.

        Args:
            progress_cb (Optional[Callable[[int, int], None]]): Optional callback
                receiving (processed, total) after each file.

        Returns:
            List[FileSummary]: One summary per converted or skipped file;
                files that failed under `skip_invalid` are left out.

        Raises:
            DataNotFound: If no reconstruction files are found.
            StructuralError: If a file fails to parse and `skip_invalid` is off.
        """
        sources = self.repo.discover()
        summaries: List[FileSummary] = []

        with tqdm(total=len(sources), desc="Converting reconstructions", unit="file") as pbar:
            for processed, source in enumerate(sources, start=1):
                try:
                    summaries.append(self.converter.convert(source))
                except StructuralError as e:
                    if not self.cfg.processing.skip_invalid:
                        raise
                    logger.error("Skipping invalid reconstruction: %s", e)

                pbar.update(1)
                if progress_cb is not None:
                    progress_cb(processed, len(sources))

        return summaries
