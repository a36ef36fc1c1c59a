"""Unit tests for embedding generation, retry and dimension reconciliation."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from inventory_rag.exceptions import (
    EmbeddingGenerationError,
    PermanentBackendError,
    TransientBackendError,
)
from inventory_rag.ingestion.embedder import (
    EmbeddingGenerator,
    JsonlEmbeddingTracer,
    is_rate_limit_error,
    reconcile_dimensions,
    retry_with_backoff,
)

from conftest import FakeEmbeddings, SleepRecorder

D = 8


class TestReconcileDimensions:
    def test_truncates_wider_vectors(self) -> None:
        assert reconcile_dimensions([1, 2, 3, 4, 5], 3) == [1.0, 2.0, 3.0]

    def test_zero_pads_narrower_vectors(self) -> None:
        assert reconcile_dimensions([1, 2], 4) == [1.0, 2.0, 0.0, 0.0]

    def test_exact_width_unchanged(self) -> None:
        assert reconcile_dimensions([0.5, -0.5], 2) == [0.5, -0.5]

    def test_rejects_non_positive_target(self) -> None:
        with pytest.raises(ValueError):
            reconcile_dimensions([1.0], 0)


class TestIsRateLimitError:
    @pytest.mark.parametrize(
        "message",
        ["HTTP 429", "Rate limit exceeded", "Too Many Requests", "RESOURCE_EXHAUSTED: quota"],
    )
    def test_message_markers(self, message: str) -> None:
        assert is_rate_limit_error(RuntimeError(message))

    def test_status_code_attribute(self) -> None:
        exc = RuntimeError("slow down")
        exc.status_code = 429  # type: ignore[attr-defined]
        assert is_rate_limit_error(exc)

    def test_response_status_code(self) -> None:
        exc = RuntimeError("error")
        exc.response = MagicMock(status_code=429)  # type: ignore[attr-defined]
        assert is_rate_limit_error(exc)

    def test_other_errors_are_not_rate_limits(self) -> None:
        assert not is_rate_limit_error(ValueError("401 Unauthorized"))


class TestRetryWithBackoff:
    def test_returns_first_success(self) -> None:
        sleep = SleepRecorder()
        assert retry_with_backoff(lambda: 42, sleep=sleep) == 42
        assert sleep.delays == []

    def test_backoff_doubles(self) -> None:
        sleep = SleepRecorder()
        fn = MagicMock(side_effect=[RuntimeError("429")] * 3 + ["ok"])

        assert retry_with_backoff(fn, initial_delay=1.5, multiplier=2.0, sleep=sleep) == "ok"
        assert sleep.delays == [1.5, 3.0, 6.0]

    def test_non_retryable_fails_fast(self) -> None:
        sleep = SleepRecorder()
        fn = MagicMock(side_effect=ValueError("bad config"))

        with pytest.raises(ValueError):
            retry_with_backoff(fn, sleep=sleep)
        assert fn.call_count == 1
        assert sleep.delays == []

    def test_gives_up_after_max_attempts(self) -> None:
        sleep = SleepRecorder()
        fn = MagicMock(side_effect=RuntimeError("429"))

        with pytest.raises(RuntimeError):
            retry_with_backoff(fn, max_attempts=3, sleep=sleep)
        assert fn.call_count == 3
        assert len(sleep.delays) == 2

    def test_single_attempt_never_sleeps(self) -> None:
        sleep = SleepRecorder()
        fn = MagicMock(side_effect=RuntimeError("429"))

        with pytest.raises(RuntimeError, match="429"):
            retry_with_backoff(fn, max_attempts=1, sleep=sleep)
        assert fn.call_count == 1
        assert sleep.delays == []


class TestEmbeddingGenerator:
    @pytest.mark.parametrize("native", [D // 2, D, D * 2])
    def test_output_always_has_target_width(self, native: int) -> None:
        gen = EmbeddingGenerator(FakeEmbeddings(native), dimensions=D, sleep=SleepRecorder())
        assert len(gen.embed("widget AB-100")) == D
        assert len(gen.embed_query("widget AB-100")) == D

    def test_truncation_keeps_leading_values(self) -> None:
        backend = FakeEmbeddings(D * 2)
        gen = EmbeddingGenerator(backend, dimensions=D, sleep=SleepRecorder())
        raw = FakeEmbeddings(D * 2).embed_query("abcdefghijklmnop")

        assert gen.embed("abcdefghijklmnop") == raw[:D]

    def test_padding_is_zeros(self) -> None:
        gen = EmbeddingGenerator(FakeEmbeddings(D // 2), dimensions=D, sleep=SleepRecorder())
        vector = gen.embed("abc")
        assert vector[D // 2 :] == [0.0] * (D // 2)

    def test_query_and_document_vectors_match(self) -> None:
        gen = EmbeddingGenerator(FakeEmbeddings(D // 2), dimensions=D, sleep=SleepRecorder())
        assert gen.embed("pallet jack") == gen.embed_query("pallet jack")

    def test_recovers_after_two_rate_limits(self) -> None:
        sleep = SleepRecorder()
        backend = FakeEmbeddings(D, rate_limited_calls=2)
        gen = EmbeddingGenerator(backend, dimensions=D, initial_delay=1.0, multiplier=2.0, sleep=sleep)

        vector = gen.embed("bolt M8")

        assert len(vector) == D
        assert len(backend.calls) == 3
        assert sleep.total >= 1.0 + 2.0

    def test_exhausted_retries_raise_typed_error(self) -> None:
        backend = FakeEmbeddings(D, rate_limited_calls=10)
        gen = EmbeddingGenerator(backend, dimensions=D, max_attempts=3, sleep=SleepRecorder())

        with pytest.raises(EmbeddingGenerationError) as info:
            gen.embed("anything")
        assert isinstance(info.value.original, TransientBackendError)
        assert len(backend.calls) == 3

    def test_permanent_error_is_not_retried(self) -> None:
        sleep = SleepRecorder()
        backend = FakeEmbeddings(D, fail_on=("poison",))
        gen = EmbeddingGenerator(backend, dimensions=D, sleep=sleep)

        with pytest.raises(EmbeddingGenerationError) as info:
            gen.embed("poison pill")
        assert isinstance(info.value.original, PermanentBackendError)
        assert len(backend.calls) == 1
        assert sleep.delays == []

    def test_tracer_receives_reconciled_vector(self) -> None:
        seen: list[tuple[str, list[float]]] = []
        gen = EmbeddingGenerator(
            FakeEmbeddings(D // 2),
            dimensions=D,
            sleep=SleepRecorder(),
            tracer=lambda text, vec: seen.append((text, vec)),
        )
        gen.embed("crate")
        assert seen[0][0] == "crate"
        assert len(seen[0][1]) == D

    def test_tracer_failure_does_not_break_embedding(self) -> None:
        def broken(text: str, vec: list[float]) -> None:
            raise OSError("disk full")

        gen = EmbeddingGenerator(FakeEmbeddings(D), dimensions=D, sleep=SleepRecorder(), tracer=broken)
        assert len(gen.embed("crate")) == D


def test_jsonl_tracer_appends_records(tmp_path: Path) -> None:
    tracer = JsonlEmbeddingTracer(tmp_path / "trace")
    tracer("first chunk", [0.1, 0.2])
    tracer("second chunk", [0.3, 0.4])

    lines = (tmp_path / "trace" / "embeddings.jsonl").read_text().splitlines()
    assert len(lines) == 2
    record = json.loads(lines[1])
    assert record["preview"] == "second chunk"
    assert record["dim"] == 2
