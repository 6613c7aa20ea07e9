"""Argparse CLI over :class:`~meddocs.services.document_tools.DocumentTools`.

Usage::

    python -m meddocs.cli upload --title "Discharge summary" --file summary.pdf \\
        --patient-id P-001 --document-type discharge_summary

    python -m meddocs.cli chunk --file notes.txt --document-id 42 --chunk-size 300

    python -m meddocs.cli search "chest pain aspirin" --mode hybrid --limit 5

    python -m meddocs.cli list --patient-id P-001

    python -m meddocs.cli delete 42

    python -m meddocs.cli stats

Every command prints a short human-readable summary, or the raw JSON
envelope with ``--json``.  The exit code is 0 on success and 1 on failure.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from meddocs.config.settings import Settings
from meddocs.models.document import DocumentType
from meddocs.models.search import ListFilter, SearchFilter, SearchMode
from meddocs.models.tools import (
    ChunkAndEmbedArgs,
    ChunkArgsMetadata,
    ListDocumentsArgs,
    SearchDocumentsArgs,
    UploadDocumentArgs,
    UploadMetadata,
)

_TEXT_SUFFIXES = frozenset({".txt", ".md", ".text"})


def _build_components(app_settings: Settings) -> dict[str, Any]:
    """Build the same components the API uses.

    The import is deferred so ``--help`` does not load models or ChromaDB.
    """
    from meddocs.main import _build_all

    return _build_all(app_settings)


def _emit(envelope: dict[str, Any], as_json: bool, summary: list[str]) -> int:
    if as_json:
        print(json.dumps(envelope, indent=2, default=str))
    elif envelope.get("success"):
        for line in summary:
            print(line)
    if not envelope.get("success"):
        print(f"Error: {envelope.get('message')}: {envelope.get('error')}", file=sys.stderr)
        return 1
    return 0


def _read_text_file(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, tools: Any) -> int:
    content = args.text
    file_path = None
    if args.file:
        if Path(args.file).suffix.lower() in _TEXT_SUFFIXES:
            content = _read_text_file(args.file)
        else:
            file_path = args.file

    request = UploadDocumentArgs(
        title=args.title,
        content=content,
        file_path=file_path,
        metadata=UploadMetadata(
            patient_id=args.patient_id,
            document_type=args.document_type,
            tags=args.tags or [],
        ),
    )
    envelope = await tools.upload_document(request)
    processing = envelope.get("processingResults", {})
    return _emit(
        envelope,
        args.json,
        [
            f"Document stored: {envelope.get('documentId')}",
            f"  Text length: {processing.get('textLength')}",
            f"  Entities:    {processing.get('entitiesFound')}",
            f"  Dimensions:  {processing.get('embeddingDimensions')}",
        ],
    )


async def _handle_chunk(args: argparse.Namespace, tools: Any) -> int:
    text = _read_text_file(args.file) if args.file else args.text
    request = ChunkAndEmbedArgs(
        text=text or "",
        chunk_size=args.chunk_size,
        overlap=args.overlap,
        metadata=ChunkArgsMetadata(
            document_id=args.document_id,
            title=args.title,
            patient_id=args.patient_id,
            document_type=args.document_type,
            source=args.source,
        ),
    )
    envelope = await tools.chunk_and_embed_document(request)
    return _emit(
        envelope,
        args.json,
        [
            f"Chunks stored: {envelope.get('successfulChunks')}/{envelope.get('totalChunks')}",
            f"  Failed:   {envelope.get('failedChunks')}",
            f"  Replaced: {envelope.get('replacedChunks')}",
            f"  Entities: {envelope.get('entitiesFound')}",
            f"  Model:    {envelope.get('model')} ({envelope.get('dimensions')} dims)",
        ],
    )


async def _handle_search(args: argparse.Namespace, tools: Any) -> int:
    request = SearchDocumentsArgs(
        query=args.query,
        limit=args.limit,
        threshold=args.threshold,
        mode=args.mode,
        filter=SearchFilter(
            patient_id=args.patient_id, document_type=args.document_type, tags=args.tags
        ),
    )
    envelope = await tools.search_documents(request)
    lines = [
        f"{envelope.get('resultsCount', 0)} result(s) via {envelope.get('strategy')}"
        + (" (degraded)" if envelope.get("degraded") else "")
    ]
    for hit in envelope.get("results", []):
        lines.append(f"  {hit['score']:.3f}  {hit['id']}  {hit['title']}")
    return _emit(envelope, args.json, lines)


async def _handle_list(args: argparse.Namespace, tools: Any) -> int:
    request = ListDocumentsArgs(
        limit=args.limit,
        offset=args.offset,
        filter=ListFilter(patient_id=args.patient_id, document_type=args.document_type),
    )
    envelope = await tools.list_documents(request)
    pagination = envelope.get("pagination", {})
    lines = [
        f"Page {pagination.get('currentPage')}/{pagination.get('totalPages')} "
        f"({pagination.get('total')} documents)"
    ]
    for row in envelope.get("documents", []):
        lines.append(f"  {row['id']}  {row['title']}  entities={row['entityCount']}")
    return _emit(envelope, args.json, lines)


async def _handle_delete(args: argparse.Namespace, tools: Any) -> int:
    envelope = await tools.delete_document(args.document_id)
    return _emit(envelope, args.json, [f"Deleted {args.document_id}"])


async def _handle_stats(store: Any) -> int:
    stats = await store.get_stats()
    print("Store Statistics")
    print("=" * 40)
    print(f"  Documents:   {stats.document_count}")
    print(f"  Chunks:      {stats.chunk_count}")
    print(f"  Embeddings:  {stats.embedding_count}")
    print(f"  Dimension:   {stats.dimension if stats.dimension is not None else '-'}")
    return 0


_HANDLERS = {
    "upload": _handle_upload,
    "chunk": _handle_chunk,
    "search": _handle_search,
    "list": _handle_list,
    "delete": _handle_delete,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_metadata_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--patient-id", default=None, help="Patient identifier")
    parser.add_argument(
        "--document-type",
        default=None,
        choices=[t.value for t in DocumentType],
        help="Document type",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meddocs",
        description="Ingest and search medical documents.",
    )
    parser.add_argument("--json", action="store_true", help="Print the raw JSON envelope")
    subparsers = parser.add_subparsers(dest="command")

    upload = subparsers.add_parser("upload", help="Ingest a document")
    upload.add_argument("--title", required=True, help="Document title")
    source = upload.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="Path to a text, PDF or image file")
    source.add_argument("--text", help="Raw document text")
    _add_metadata_args(upload)
    upload.add_argument("--tags", nargs="*", default=None, help="Document tags")

    chunk = subparsers.add_parser("chunk", help="Chunk, embed and store a text")
    chunk_source = chunk.add_mutually_exclusive_group(required=True)
    chunk_source.add_argument("--file", help="Path to a UTF-8 text file")
    chunk_source.add_argument("--text", help="Raw text")
    chunk.add_argument("--chunk-size", type=int, default=500, help="Words per chunk")
    chunk.add_argument("--overlap", type=int, default=100, help="Words shared by neighbours")
    chunk.add_argument("--document-id", default=None, help="Replace this document's chunks")
    chunk.add_argument("--title", default=None, help="Title stored with each chunk")
    chunk.add_argument("--source", default=None, help="Source label stored with each chunk")
    _add_metadata_args(chunk)

    search = subparsers.add_parser("search", help="Search documents")
    search.add_argument("query", help="Query text")
    search.add_argument("--limit", type=int, default=10)
    search.add_argument(
        "--threshold", type=float, default=None, help="Minimum score (default depends on --mode)"
    )
    search.add_argument(
        "--mode", default=SearchMode.HYBRID.value, choices=[m.value for m in SearchMode]
    )
    search.add_argument("--tags", nargs="*", default=None)
    _add_metadata_args(search)

    listing = subparsers.add_parser("list", help="List documents")
    listing.add_argument("--limit", type=int, default=20)
    listing.add_argument("--offset", type=int, default=0)
    _add_metadata_args(listing)

    delete = subparsers.add_parser("delete", help="Delete a document and its chunks")
    delete.add_argument("document_id", help="Document id")

    subparsers.add_parser("stats", help="Show store statistics")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments, build components, dispatch."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    components = _build_components(Settings())

    if args.command == "stats":
        sys.exit(asyncio.run(_handle_stats(components["store"])))

    handler = _HANDLERS[args.command]
    sys.exit(asyncio.run(handler(args, components["tools"])))
