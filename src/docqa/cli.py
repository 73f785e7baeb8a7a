"""Command-line entry point: ``docqa serve | ingest | ask``."""

from __future__ import annotations

import argparse
import logging
import sys

from docqa.config import Settings
from docqa.errors import DocQAError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _serve(settings: Settings, args: argparse.Namespace) -> int:
    import uvicorn

    from docqa.serving.app import create_app

    # Ingestion runs inside the app's lifespan, before the socket is bound.
    uvicorn.run(
        create_app(settings=settings),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def _ingest(settings: Settings, args: argparse.Namespace) -> int:
    from docqa.ingestion.controller import IngestionState
    from docqa.serving.bootstrap import build_services

    services = build_services(settings)
    try:
        report = services.start()
    finally:
        services.close()
    print(report.model_dump_json(indent=2))
    return 0 if report.state is IngestionState.DONE else 1


def _ask(settings: Settings, args: argparse.Namespace) -> int:
    from docqa.serving.bootstrap import build_services

    services = build_services(settings)
    try:
        if args.ingest:
            services.start()
        else:
            services.initialize_store()
        answer = services.query_service.answer(args.question)
    finally:
        services.close()
    print(answer.answer)
    if answer.citations:
        print("\nSources: " + ", ".join(answer.sources))
    else:
        print("\n(no supporting document context found)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docqa", description="Document question answering")
    parser.add_argument("--documents-dir", help="Override DOCUMENTS_DIR")
    parser.add_argument("--vector-store", choices=["chroma", "memory"], help="Override VECTOR_STORE")
    parser.add_argument("--best-effort", action="store_true", help="Skip unreadable documents")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Ingest documents, then serve the HTTP API")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    serve.set_defaults(func=_serve)

    ingest = sub.add_parser("ingest", help="Ingest documents and print the report")
    ingest.set_defaults(func=_ingest)

    ask = sub.add_parser("ask", help="Answer one question from the command line")
    ask.add_argument("question")
    ask.add_argument("--ingest", action="store_true", help="Ingest before answering")
    ask.set_defaults(func=_ask)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    overrides: dict = {}
    if args.documents_dir:
        overrides["documents_dir"] = args.documents_dir
    if args.vector_store:
        overrides["vector_store"] = args.vector_store
    if args.best_effort:
        overrides["ingestion_best_effort"] = True
    settings = Settings(**overrides)
    configure_logging("DEBUG" if args.verbose else settings.log_level)

    try:
        return args.func(settings, args)
    except DocQAError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
