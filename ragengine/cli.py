"""Index documents and query them from the command line.

Usage:
    ragengine docs/                        # Ingest a directory
    ragengine notes.md paper.pdf -q "..."  # Ingest files, then query
    ragengine --check                      # Check the embedding service
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from ragengine import config
from ragengine.config import RAGSettings
from ragengine.errors import RAGEngineError
from ragengine.logging_config import configure_logging
from ragengine.rag.engine import RAGEngine
from ragengine.rag.models import DocumentHandle, EngineEvent, EventKind, IngestionStatus


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False, stream=None):
        self.verbose = verbose
        self.stream = stream or sys.stdout
        self.start_time = None
        self.files_done = 0
        self.files_total = 0

    def _print(self, text: str = "", end: str = "\n") -> None:
        print(text, end=end, file=self.stream, flush=True)

    def start(self, message: str, files_total: int):
        """Start progress reporting."""
        self.start_time = datetime.now()
        self.files_total = files_total
        self._print(f"\n{'=' * 60}")
        self._print(f"  {message}")
        self._print(f"{'=' * 60}\n")

    def on_event(self, event: EngineEvent):
        """Engine listener: advance the bar per finished file."""
        if event.kind in (EventKind.DOCUMENT_INGESTED, EventKind.INGESTION_ERROR):
            self.files_done += 1
            self.update(self.files_done, self.files_total, event.path)
            if event.kind == EventKind.INGESTION_ERROR and self.verbose:
                self._print(f"  ❌ {event.path}: {event.data.get('error')}")

    def update(self, current: int, total: int, file_path: Path):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        file_name = file_path.name if file_path else ""
        self._print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_name[:30]:<30}",
            end="" if not self.verbose else "\n",
        )

    def finish(self, handles: List[DocumentHandle], stats: dict):
        """Finish progress reporting."""
        self._print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()
        failed = [h for h in handles if h.status == IngestionStatus.FAILED]
        partial = [h for h in handles if h.status == IngestionStatus.PARTIALLY_COMPLETED]

        self._print(f"{'=' * 60}")
        self._print("  Indexing Complete!")
        self._print(f"{'=' * 60}\n")
        self._print(f"  📁 Files processed:      {len(handles) - len(failed)}")
        self._print(f"  ❌ Files failed:         {len(failed)}")
        self._print(f"  ⚠️  Partially embedded:   {len(partial)}")
        self._print(f"  📝 Chunks indexed:       {stats['chunk_count']}")
        self._print(f"  🧮 Embedding dimension:  {stats['embedding_dimension']}")
        self._print(f"  ⏱️  Time elapsed:         {elapsed_seconds:.1f}s")
        self._print(f"\n{'=' * 60}\n")

        for handle in failed:
            self._print(f"⚠️  {handle.path}: {handle.error}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ragengine",
        description="Index documents for retrieval and optionally query them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("paths", nargs="*", type=Path, help="Files or directories to ingest")
    parser.add_argument("--query", "-q", help="Query to run after ingestion")
    parser.add_argument(
        "--top-k",
        type=int,
        default=None,
        help=f"Number of passages to retrieve (default: {config.RETRIEVAL_TOP_K})",
    )
    parser.add_argument(
        "--no-recursive",
        action="store_true",
        help="Only ingest files directly inside given directories",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check that the embedding service is reachable and exit",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show verbose progress output")
    return parser


async def main(
    argv: Optional[List[str]] = None,
    engine_factory: Callable[[RAGSettings], RAGEngine] = RAGEngine,
    stream=None,
) -> int:
    """Run the CLI and return the process exit code."""
    args = build_parser().parse_args(argv)
    stream = stream or sys.stdout

    settings = RAGSettings()
    engine = engine_factory(settings)

    if args.check:
        try:
            models = await engine.embedding_client.list_models()
        except RAGEngineError as e:
            print(f"❌ Embedding service unavailable: {e}", file=stream)
            return 1
        available = settings.embedding_model in models or any(
            m.split(":")[0] == settings.embedding_model for m in models
        )
        status = "✅" if available else "⚠️  model not pulled:"
        print(f"{status} {settings.embedding_model} @ {settings.base_url}", file=stream)
        return 0 if available else 1

    progress = ProgressReporter(verbose=args.verbose, stream=stream)
    engine.add_listener(progress.on_event)

    files = [p for p in args.paths if p.is_file()]
    directories = [p for p in args.paths if p.is_dir()]
    missing = [p for p in args.paths if not p.exists()]

    handles: List[DocumentHandle] = []
    for path in missing:
        handles.append(
            DocumentHandle(
                document_id=None,
                path=path,
                status=IngestionStatus.FAILED,
                error="path does not exist",
            )
        )

    if files or directories:
        progress.start("Indexing Documents", files_total=len(files))

        for path in files:
            try:
                handles.append(await engine.ingest_document(path))
            except RAGEngineError as e:
                handles.append(
                    DocumentHandle(
                        document_id=None,
                        path=path,
                        status=IngestionStatus.FAILED,
                        error=str(e),
                    )
                )

        for directory in directories:
            pattern = "*" if args.no_recursive else "**/*"
            progress.files_total += sum(
                1 for p in directory.glob(pattern) if p.is_file() and engine.loader.is_supported(p)
            )
            report = await engine.ingest_directory(directory, recursive=not args.no_recursive)
            handles.extend(report.documents)

        progress.finish(handles, engine.get_stats())

    exit_code = 1 if any(h.status == IngestionStatus.FAILED for h in handles) else 0

    if args.query:
        try:
            results = await engine.retrieve(args.query, top_k=args.top_k)
        except RAGEngineError as e:
            print(f"❌ Query failed: {e}", file=stream)
            return 1

        if not results:
            print("No matching passages.", file=stream)
        for i, result in enumerate(results, 1):
            print(f"[{i}] {result.source} (score {result.score:.3f})", file=stream)
            print(result.content.strip(), file=stream)
            print(file=stream)

    return exit_code


def run() -> None:
    """Console script entry point."""
    configure_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n\n⚠️  Indexing cancelled by user.\n")
        sys.exit(1)


if __name__ == "__main__":
    run()
