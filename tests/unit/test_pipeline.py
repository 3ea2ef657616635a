"""
Unit tests for the batch orchestrator — render → upload → save → send per recipient.

Uses mock ports (MagicMock) and small in-memory fakes to test the
orchestrator in isolation.

Test categories:
  - Success track: every gate succeeds → succeeded, in input order, unique ids
  - Failure at each gate: render / upload / save → failed with that stage
  - Short-circuit: a failed gate prevents every later gate for that recipient
  - Notification: a failed send never demotes a succeeded issuance
  - Accounting: every row lands in exactly one bucket
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from cert_issuer.domain.models import (
    FailedIssuance,
    IssuanceRecord,
    Recipient,
    RenderedArtifact,
    Stage,
    SucceededIssuance,
)
from cert_issuer.pipeline import issue_certificate, run_batch, run_csv_upload, run_upload
from cert_issuer.railway import ErrorCode, Result, ResultAssertions
from tests.conftest import (
    FIXED_NOW,
    FakeRenderer,
    InMemoryArtifactStore,
    RecordingNotifier,
    fixed_clock,
    sequential_ids,
)

# ─────────────────────── Mock Port Factories ───────────────────────


def _make_renderer(result: Result[RenderedArtifact] | None = None) -> MagicMock:
    mock = MagicMock()
    if result is None:
        result = Result.success(
            RenderedArtifact(content=b"%PDF-1.4", content_type="application/pdf")
        )
    mock.render.return_value = result
    return mock


def _make_store(result: Result[str] | None = None) -> MagicMock:
    mock = MagicMock()
    mock.upload.return_value = (
        Result.success("https://storage.test/c.pdf") if result is None else result
    )
    return mock


def _make_repository(result: Result[IssuanceRecord] | None = None) -> MagicMock:
    mock = MagicMock()
    if result is None:
        mock.save.side_effect = lambda record: Result.success(record)
    else:
        mock.save.return_value = result
    return mock


def _make_notifier(result: Result[str] | None = None) -> MagicMock:
    mock = MagicMock()
    mock.send.return_value = Result.success("ann@x.com") if result is None else result
    return mock


ANN = Recipient("Ann Lee", "ann@x.com")
BO = Recipient("Bo Diaz", "bo@x.com", "Data Science")
CY = Recipient("Cy Park", "cy@x.com")


# ─────────────────────── Single recipient ───────────────────────


class TestIssueCertificateSuccess:
    def test_all_gates_succeed(self) -> None:
        """
        GIVEN every port succeeds
        WHEN issue_certificate is called
        THEN it returns SucceededIssuance with the store URL and notified=True.
        """
        renderer, store, repository, notifier = (
            _make_renderer(), _make_store(), _make_repository(), _make_notifier()
        )

        outcome = issue_certificate(
            ANN, renderer, store, repository, notifier,
            clock=fixed_clock, id_factory=lambda: "cert_1",
        )

        assert outcome == SucceededIssuance(
            recipient=ANN,
            issuance_id="cert_1",
            artifact_url="https://storage.test/c.pdf",
            notified=True,
        )

    def test_gates_receive_the_same_id_and_timestamp(self) -> None:
        """
        GIVEN a fixed id and clock
        WHEN issue_certificate is called
        THEN render, upload, save and send all agree on the id and timestamp.
        """
        renderer, store, repository, notifier = (
            _make_renderer(), _make_store(), _make_repository(), _make_notifier()
        )

        issue_certificate(
            BO, renderer, store, repository, notifier,
            clock=fixed_clock, id_factory=lambda: "cert_7",
        )

        renderer.render.assert_called_once_with("Bo Diaz", "cert_7", "Data Science", FIXED_NOW)
        store.upload.assert_called_once_with(b"%PDF-1.4", "cert_7", "application/pdf")
        saved: IssuanceRecord = repository.save.call_args.args[0]
        assert saved.issuance_id == "cert_7"
        assert saved.issued_at == FIXED_NOW
        assert saved.recipient == BO
        assert saved.artifact_url == "https://storage.test/c.pdf"
        assert saved.artifact_content_type == "application/pdf"
        notifier.send.assert_called_once_with("bo@x.com", "Bo Diaz", "cert_7")

    def test_persist_happens_before_notify(self) -> None:
        order: list[str] = []

        def _save(record: IssuanceRecord) -> Result[IssuanceRecord]:
            order.append("save")
            return Result.success(record)

        def _send(address: str, name: str, issuance_id: str) -> Result[str]:
            order.append("send")
            return Result.success(address)

        repository, notifier = MagicMock(), MagicMock()
        repository.save.side_effect = _save
        notifier.send.side_effect = _send

        issue_certificate(ANN, _make_renderer(), _make_store(), repository, notifier)

        assert order == ["save", "send"]


class TestIssueCertificateFailures:
    def test_render_failure_stops_everything(self) -> None:
        """
        GIVEN the renderer fails
        WHEN issue_certificate is called
        THEN the recipient fails at RENDER and no later gate runs.
        """
        store, repository, notifier = _make_store(), _make_repository(), _make_notifier()
        renderer = _make_renderer(
            Result.failure(ErrorCode.RENDER_ERROR, "Certificate generation failed")
        )

        outcome = issue_certificate(ANN, renderer, store, repository, notifier)

        assert isinstance(outcome, FailedIssuance)
        assert outcome.stage is Stage.RENDER
        assert outcome.code is ErrorCode.RENDER_ERROR
        store.upload.assert_not_called()
        repository.save.assert_not_called()
        notifier.send.assert_not_called()

    @pytest.mark.parametrize(
        "code",
        [ErrorCode.ACCESS_DENIED, ErrorCode.NETWORK_UNREACHABLE, ErrorCode.UPLOAD_FAILED],
    )
    def test_store_failure_means_no_record_and_no_email(self, code: ErrorCode) -> None:
        """
        GIVEN the artifact store fails with any storage error
        WHEN issue_certificate is called
        THEN the recipient fails at STORE, nothing is persisted and no email is sent.
        """
        repository, notifier = _make_repository(), _make_notifier()
        store = _make_store(Result.failure(code, "storage said no"))

        outcome = issue_certificate(ANN, _make_renderer(), store, repository, notifier)

        assert isinstance(outcome, FailedIssuance)
        assert outcome.stage is Stage.STORE
        assert outcome.code is code
        assert outcome.reason == "storage said no"
        repository.save.assert_not_called()
        notifier.send.assert_not_called()

    def test_save_failure_means_no_email(self) -> None:
        notifier = _make_notifier()
        repository = _make_repository(Result.failure(ErrorCode.DATABASE_ERROR, "down"))

        outcome = issue_certificate(ANN, _make_renderer(), _make_store(), repository, notifier)

        assert isinstance(outcome, FailedIssuance)
        assert outcome.stage is Stage.PERSIST
        notifier.send.assert_not_called()

    def test_exception_escaping_an_adapter_becomes_unknown_error(self) -> None:
        """
        GIVEN the store raises instead of returning a Result
        WHEN issue_certificate is called
        THEN the recipient fails at STORE with UNKNOWN_ERROR (no exception escapes).
        """
        store = MagicMock()
        store.upload.side_effect = RuntimeError("socket exploded")

        outcome = issue_certificate(
            ANN, _make_renderer(), store, _make_repository(), _make_notifier()
        )

        assert isinstance(outcome, FailedIssuance)
        assert outcome.stage is Stage.STORE
        assert outcome.code is ErrorCode.UNKNOWN_ERROR
        assert "socket exploded" in outcome.reason


class TestNotificationNeverDemotes:
    @pytest.mark.parametrize("code", [ErrorCode.NOTIFY_TIMEOUT, ErrorCode.NOTIFY_ERROR])
    def test_failed_send_still_succeeds(self, code: ErrorCode) -> None:
        """
        GIVEN render, upload and save succeed but the email fails
        WHEN issue_certificate is called
        THEN the recipient is succeeded with notified=False.
        """
        notifier = _make_notifier(Result.failure(code, "smtp gone"))

        outcome = issue_certificate(
            ANN, _make_renderer(), _make_store(), _make_repository(), notifier
        )

        assert isinstance(outcome, SucceededIssuance)
        assert outcome.notified is False

    def test_raising_notifier_still_succeeds(self) -> None:
        notifier = MagicMock()
        notifier.send.side_effect = TimeoutError("timed out")

        outcome = issue_certificate(
            ANN, _make_renderer(), _make_store(), _make_repository(), notifier
        )

        assert isinstance(outcome, SucceededIssuance)
        assert outcome.notified is False


# ─────────────────────── Batches ───────────────────────


class TestRunBatch:
    def test_three_valid_rows_all_succeed_in_order(
        self,
        renderer: FakeRenderer,
        store: InMemoryArtifactStore,
        notifier: RecordingNotifier,
    ) -> None:
        """
        GIVEN 3 valid recipients and every gate succeeding
        WHEN run_batch is called
        THEN 3 succeeded entries come back in input order with unique ids.
        """
        outcome = run_batch([ANN, BO, CY], renderer, store, _make_repository(), notifier)

        assert [s.recipient for s in outcome.succeeded] == [ANN, BO, CY]
        assert len({s.issuance_id for s in outcome.succeeded}) == 3
        assert outcome.failed == ()
        assert outcome.valid_rows == 3

    def test_one_failure_does_not_stop_the_rest(self, notifier: RecordingNotifier) -> None:
        """
        GIVEN the store denies access for the second recipient only
        WHEN run_batch is called
        THEN recipients 1 and 3 succeed and recipient 2 fails at STORE.
        """
        store = InMemoryArtifactStore(deny_for={"Bo Diaz"})

        outcome = run_batch(
            [ANN, BO, CY], FakeRenderer(), store, _make_repository(), notifier,
            id_factory=sequential_ids(),
        )

        assert [s.recipient for s in outcome.succeeded] == [ANN, CY]
        assert [f.recipient for f in outcome.failed] == [BO]
        assert outcome.failed[0].code is ErrorCode.ACCESS_DENIED
        assert "row-level security" in outcome.failed[0].reason
        assert [address for address, _, _ in notifier.sent] == ["ann@x.com", "cy@x.com"]

    def test_resubmitting_the_same_recipient_gives_distinct_ids(
        self, renderer: FakeRenderer, store: InMemoryArtifactStore, notifier: RecordingNotifier
    ) -> None:
        repository = _make_repository()

        outcome = run_batch([ANN, ANN], renderer, store, repository, notifier)

        ids = [s.issuance_id for s in outcome.succeeded]
        assert ids[0] != ids[1]
        assert all(i.startswith("cert_") for i in ids)
        assert repository.save.call_count == 2

    def test_empty_batch(self) -> None:
        outcome = run_batch([], _make_renderer(), _make_store(), _make_repository(), _make_notifier())

        assert outcome.valid_rows == 0
        assert outcome.succeeded == () and outcome.failed == ()


class TestRunUpload:
    def test_every_row_lands_in_exactly_one_bucket(self, notifier: RecordingNotifier) -> None:
        """
        GIVEN valid, invalid and failing rows mixed together
        WHEN run_upload is called
        THEN succeeded + failed == valid_rows and valid_rows + invalid == total rows.
        """
        rows = [
            {"Name": "Ann Lee", "Email": "ann@x.com"},
            {"Name": "", "Email": "a@b.com"},
            {"Name": "Bo Diaz", "Email": "bo@x.com"},
            {"Name": "Bo", "Email": "not-an-email"},
            {"Name": "Cy Park", "Email": "cy@x.com"},
        ]
        renderer = FakeRenderer(fail_for={"Cy Park"})

        outcome = run_upload(rows, renderer, InMemoryArtifactStore(), _make_repository(), notifier)

        assert len(outcome.succeeded) + len(outcome.failed) == outcome.valid_rows == 3
        assert outcome.valid_rows + len(outcome.invalid_rows) == outcome.total_rows == len(rows)
        assert [i.code for i in outcome.invalid_rows] == [
            ErrorCode.MISSING_FIELD,
            ErrorCode.INVALID_EMAIL,
        ]
        assert outcome.failed[0].stage is Stage.RENDER

    def test_invalid_rows_are_never_issued(self) -> None:
        renderer = _make_renderer()

        outcome = run_upload(
            [{"Name": "", "Email": "a@b.com"}],
            renderer, _make_store(), _make_repository(), _make_notifier(),
        )

        assert outcome.valid_rows == 0
        renderer.render.assert_not_called()


class TestRunCsvUpload:
    def test_decodes_then_issues(
        self, renderer: FakeRenderer, store: InMemoryArtifactStore, notifier: RecordingNotifier
    ) -> None:
        content = b"Name,Email,Program\nAnn Lee,ann@x.com,\nBo Diaz,bo@x.com,Data Science\n"

        result = run_csv_upload(
            content, "roster.csv", renderer, store, _make_repository(), notifier
        )

        outcome = ResultAssertions.assert_success(result)
        assert [s.recipient for s in outcome.succeeded] == [ANN, BO]

    def test_format_error_processes_no_rows(self) -> None:
        """
        GIVEN a file that is not a CSV
        WHEN run_csv_upload is called
        THEN it fails with FORMAT_ERROR and no port is touched.
        """
        renderer, store = _make_renderer(), _make_store()

        result = run_csv_upload(
            b"Name,Email\nAnn,ann@x.com\n", "roster.txt",
            renderer, store, _make_repository(), _make_notifier(),
        )

        ResultAssertions.assert_failure(result, ErrorCode.FORMAT_ERROR)
        renderer.render.assert_not_called()
        store.upload.assert_not_called()
