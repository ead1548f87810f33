import pytest

from emailops.core.constants import AlertSeverity, AlertType, ClientStatus, JobName, JobRunStatus, QueueName
from emailops.core.exceptions import ValidationError
from emailops.domain.models import Alert, ConnectionTestResult, Credential
from emailops.jobs.processors.verification import (
    process_verification_job,
    verify_all_credentials,
    verify_credentials,
)
from emailops.jobs.queue import Job

CREDENTIALS = {"apiKey": "key-us1"}


def open_credential_alerts(repository, client_id):
    return [
        a
        for a in repository.list_alerts(client_id)
        if a.type == AlertType.CREDENTIAL_ISSUE and not a.is_resolved
    ]


class TestVerifyCredentials:
    def test_missing_credentials_move_client_to_pending(self, context, repository, make_client):
        client = make_client()

        result = verify_credentials(context, {"clientId": client.id})

        assert result["valid"] is False
        assert result["reason"] == "missing"
        assert repository.get_client(client.id).status == ClientStatus.PENDING
        (alert,) = open_credential_alerts(repository, client.id)
        assert alert.severity == AlertSeverity.HIGH
        assert alert.title == "Missing Credentials"

    def test_repeated_failures_keep_a_single_open_alert(self, context, repository, make_client):
        client = make_client()

        first = verify_credentials(context, {"clientId": client.id})
        second = verify_credentials(context, {"clientId": client.id})

        assert first["alertCreated"] is True
        assert second["alertCreated"] is False
        assert len(open_credential_alerts(repository, client.id)) == 1

    def test_success_activates_client_and_resolves_alerts(self, context, repository, make_client):
        client = make_client(status=ClientStatus.PENDING, credentials=CREDENTIALS)
        repository.create_alert(
            Alert(
                client_id=client.id,
                type=AlertType.CREDENTIAL_ISSUE,
                severity=AlertSeverity.HIGH,
                title="Credential Verification Failed",
                message="Invalid API key",
            )
        )

        result = verify_credentials(context, {"clientId": client.id})

        assert result == {"clientId": client.id, "valid": True, "alertsResolved": 1}
        assert repository.get_client(client.id).status == ClientStatus.ACTIVE
        assert open_credential_alerts(repository, client.id) == []
        credential = repository.get_credential(client.id)
        assert credential.is_valid is True
        assert credential.last_verified_at is not None

    def test_rejected_connection_raises_alert_with_vendor_error(
        self, context, repository, adapter_factory, make_client
    ):
        client = make_client(credentials=CREDENTIALS)
        adapter_factory.for_client(client.id).connection = ConnectionTestResult(
            success=False, message="Failed to connect to Mailchimp", error="API Key Invalid"
        )

        result = verify_credentials(context, {"clientId": client.id})

        assert result["reason"] == "rejected"
        (alert,) = open_credential_alerts(repository, client.id)
        assert alert.title == "Credential Verification Failed"
        assert alert.metadata == {"error": "API Key Invalid"}
        assert repository.get_credential(client.id).is_valid is False
        assert repository.get_client(client.id).status == ClientStatus.ACTIVE

    def test_undecryptable_credentials_raise_error_alert(self, context, repository, make_client):
        client = make_client()
        repository.save_credential(
            Credential(client_id=client.id, ciphertext="AAAA", iv="AAAAAAAAAAAAAAAA", auth_tag="AAAAAAAAAAAAAAAAAAAAAA==")
        )

        result = verify_credentials(context, {"clientId": client.id})

        assert result["reason"] == "error"
        (alert,) = open_credential_alerts(repository, client.id)
        assert alert.title == "Credential Verification Error"


class TestVerifyAllCredentials:
    def test_covers_active_and_pending_clients(self, context, adapter_factory, make_client):
        make_client("Good", credentials=CREDENTIALS)
        make_client("Waiting", status=ClientStatus.PENDING)
        bad = make_client("Bad", credentials=CREDENTIALS)
        make_client("Gone", status=ClientStatus.CHURNED, credentials=CREDENTIALS)
        adapter_factory.for_client(bad.id).connection = ConnectionTestResult(
            success=False, message="Unauthorized", error="401"
        )

        result = verify_all_credentials(context, {})

        assert result == {"clients": 3, "valid": 1, "invalid": 2, "failed": 0}


class TestProcessVerificationJob:
    def test_job_run_is_completed(self, context, repository, make_client):
        client = make_client(credentials=CREDENTIALS)
        job = Job(name=JobName.VERIFY_CREDENTIALS.value, queue=QueueName.VERIFICATION.value, data={"clientId": client.id})

        output = process_verification_job(job, context)

        assert output["valid"] is True
        assert repository.list_job_runs()[0].status == JobRunStatus.COMPLETED

    def test_invalid_payload_fails_job_run(self, context, repository):

        job = Job(name=JobName.VERIFY_CREDENTIALS.value, queue=QueueName.VERIFICATION.value, data={"clientId": ""})

        with pytest.raises(ValidationError):
            process_verification_job(job, context)
        assert repository.list_job_runs()[0].status == JobRunStatus.FAILED
