"""Unit tests for the ingestion state machine."""

from __future__ import annotations

from pathlib import Path

import pytest

from docqa.errors import ConfigurationError, IngestionError, IngestionStateError, VectorStoreError
from docqa.ingestion.chunker import TokenWindowSplitter
from docqa.ingestion.controller import IngestionController, IngestionState
from docqa.ingestion.embedder import EmbeddingClient
from docqa.retrieval.memory_store import InMemoryVectorStore
from docqa.retrieval.retriever import Retriever
from docqa.tokenizer import RegexTokenizer

S = IngestionState


class RejectingStore(InMemoryVectorStore):
    def upsert(self, records):
        raise VectorStoreError("disk full")


@pytest.fixture()
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore("test")


@pytest.fixture()
def make_controller(docs_dir: Path, embeddings, store):
    def _make(*, best_effort: bool = False, target=None) -> IngestionController:
        return IngestionController(
            docs_dir,
            TokenWindowSplitter(RegexTokenizer(), chunk_size=20, chunk_overlap=4),
            EmbeddingClient(embeddings, max_retries=1),
            target if target is not None else store,
            best_effort=best_effort,
            max_retries=2,
            backoff_seconds=0,
        )

    return _make


# ── Happy path ──────────────────────────────────────────────────────────


def test_states_advance_in_order(docs_dir: Path, make_controller, store) -> None:
    (docs_dir / "france.txt").write_text("The capital of France is Paris. " * 10)
    (docs_dir / "italy.md").write_text("# Italy\n\nThe capital of Italy is Rome.")

    controller = make_controller()
    assert controller.state is S.NOT_STARTED
    report = controller.run()

    assert controller.history == [S.NOT_STARTED, S.READING, S.CHUNKING, S.EMBEDDING, S.PERSISTING, S.DONE]
    assert report.state is S.DONE
    assert report.documents_found == 2
    assert report.documents_read == 2
    assert report.chunks > 2
    assert report.records_persisted == report.chunks == store.count()
    assert report.error is None


def test_empty_directory_completes_with_nothing_stored(make_controller, store) -> None:
    report = make_controller().run()
    assert report.state is S.DONE
    assert report.documents_found == 0
    assert store.count() == 0


def test_missing_directory_completes(tmp_path: Path, embeddings, store) -> None:
    controller = IngestionController(
        tmp_path / "absent",
        TokenWindowSplitter(RegexTokenizer(), chunk_size=20, chunk_overlap=4),
        EmbeddingClient(embeddings),
        store,
    )
    assert controller.run().state is S.DONE


def test_documents_without_text_are_skipped(docs_dir: Path, make_controller) -> None:
    (docs_dir / "blank.txt").write_text("   \n\n  ")
    (docs_dir / "real.txt").write_text("Some real content.")

    report = make_controller().run()
    assert report.state is S.DONE
    assert report.documents_read == 1
    assert [s.reason for s in report.skipped] == ["no extractable text"]


def test_single_chunk_document_is_its_own_top_hit(docs_dir: Path, make_controller, embeddings, store) -> None:
    text = "Glaciers carve valleys over thousands of years."
    (docs_dir / "glaciers.txt").write_text(text)
    make_controller().run()

    result = Retriever(EmbeddingClient(embeddings), store, k=1).retrieve(text)
    assert result.hits[0].record.text == text
    assert result.hits[0].score == pytest.approx(1.0, abs=1e-5)


def test_reingestion_does_not_duplicate(docs_dir: Path, make_controller, store) -> None:
    (docs_dir / "france.txt").write_text("The capital of France is Paris. " * 10)
    first = make_controller().run()
    count = store.count()

    second = make_controller().run()
    assert second.records_persisted == first.records_persisted
    assert store.count() == count


def test_shrunk_document_loses_stale_chunks(docs_dir: Path, make_controller, store) -> None:
    path = docs_dir / "france.txt"
    path.write_text("The capital of France is Paris. " * 10)
    make_controller().run()
    assert store.count() > 1

    path.write_text("Paris.")
    make_controller().run()
    assert store.count() == 1


# ── Failures ────────────────────────────────────────────────────────────


def test_unreadable_document_is_fatal_by_default(docs_dir: Path, make_controller) -> None:
    (docs_dir / "good.txt").write_text("Readable.")
    (docs_dir / "broken.pdf").write_bytes(b"not a pdf")

    controller = make_controller()
    with pytest.raises(IngestionError) as excinfo:
        controller.run()

    assert excinfo.value.source is not None and excinfo.value.source.endswith("broken.pdf")
    assert controller.state is S.FAILED
    assert controller.history[-2:] == [S.READING, S.FAILED]
    assert controller.report.error.startswith("reading:")


def test_unreadable_document_skipped_in_best_effort(docs_dir: Path, make_controller, store) -> None:
    (docs_dir / "good.txt").write_text("Readable.")
    (docs_dir / "broken.pdf").write_bytes(b"not a pdf")

    report = make_controller(best_effort=True).run()
    assert report.state is S.DONE
    assert report.documents_read == 1
    assert len(report.skipped) == 1
    assert report.skipped[0].source.endswith("broken.pdf")
    assert store.count() == 1


def test_store_failure_fails_ingestion(docs_dir: Path, make_controller) -> None:
    (docs_dir / "good.txt").write_text("Readable.")
    controller = make_controller(target=RejectingStore())
    with pytest.raises(IngestionError, match="disk full"):
        controller.run()
    assert controller.history[-2:] == [S.PERSISTING, S.FAILED]


def test_best_effort_reports_failure_instead_of_raising(docs_dir: Path, make_controller) -> None:
    (docs_dir / "good.txt").write_text("Readable.")
    report = make_controller(best_effort=True, target=RejectingStore()).run()
    assert report.state is S.FAILED
    assert "disk full" in report.error


def test_schema_conflict_is_always_fatal(docs_dir: Path, make_controller, store) -> None:
    (docs_dir / "good.txt").write_text("Readable.")
    store.initialize(8, "cosine")
    with pytest.raises(ConfigurationError):
        make_controller(best_effort=True).run()


def test_controller_runs_only_once(make_controller) -> None:
    controller = make_controller()
    controller.run()
    with pytest.raises(IngestionStateError):
        controller.run()
    assert controller.state is S.DONE
