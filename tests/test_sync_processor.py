from datetime import timedelta

import pytest

from emailops.core.constants import CampaignStatus, ClientStatus, JobName, JobRunStatus, QueueName, SyncStatus
from emailops.core.exceptions import JobError, NotFoundError, ValidationError
from emailops.domain.models import Campaign, Metrics, PlatformList
from emailops.jobs.processors.sync import (
    process_sync_job,
    sync_all_campaigns,
    sync_campaigns,
    sync_lists,
    sync_metrics,
)
from emailops.jobs.processors.verification import verify_client_credentials, verify_credentials
from emailops.jobs.queue import Job
from emailops.security.cipher import EncryptedPayload
from emailops.utils.date_utils import utcnow
from tests.conftest import platform_campaign

CREDENTIALS = {"apiKey": "key-us1"}


def sync_job(name: JobName, data: dict) -> Job:
    return Job(name=name.value, queue=QueueName.SYNC.value, data=data)


class TestSyncCampaigns:
    def test_inserts_new_and_updates_existing_in_place(self, context, repository, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        stale_sync = utcnow() - timedelta(days=1)
        existing = repository.upsert_campaign(
            Campaign(
                client_id=client.id,
                external_id="c2",
                name="Campaign c2",
                status=CampaignStatus.DRAFT,
                subject_line="Old subject",
                synced_at=stale_sync,
            )
        )
        adapter_factory.for_client(client.id).campaigns = [
            platform_campaign("c1"),
            platform_campaign("c2", subject_line="New subject"),
        ]

        result = sync_campaigns(context, {"clientId": client.id})

        assert result == {"clientId": client.id, "synced": 2, "errors": 0, "total": 2}
        campaigns = {c.external_id: c for c in repository.list_campaigns(client.id)}
        assert set(campaigns) == {"c1", "c2"}
        assert campaigns["c2"].id == existing.id
        assert campaigns["c2"].subject_line == "New subject"
        assert campaigns["c2"].synced_at > stale_sync

        stored = repository.get_client(client.id)
        assert stored.sync_status == SyncStatus.SYNCED
        assert stored.last_sync_at is not None

    def test_rerun_is_idempotent(self, context, repository, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        adapter_factory.for_client(client.id).campaigns = [platform_campaign("c1"), platform_campaign("c2")]

        sync_campaigns(context, {"clientId": client.id})
        first_ids = {c.external_id: c.id for c in repository.list_campaigns(client.id)}
        sync_campaigns(context, {"clientId": client.id})

        assert {c.external_id: c.id for c in repository.list_campaigns(client.id)} == first_ids

    def test_existing_metrics_survive_when_listing_has_none(self, context, repository, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        metrics = Metrics.from_counts(sent=100, unique_opens=25)
        repository.upsert_campaign(
            Campaign(
                client_id=client.id,
                external_id="c1",
                name="Campaign c1",
                status=CampaignStatus.SENT,
                metrics=metrics,
            )
        )
        adapter_factory.for_client(client.id).campaigns = [platform_campaign("c1", status=CampaignStatus.SENT)]

        sync_campaigns(context, {"clientId": client.id})

        assert repository.get_campaign(client.id, "c1").metrics == metrics

    def test_item_failure_marks_client_partial(self, context, repository, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        adapter_factory.for_client(client.id).campaigns = [platform_campaign("c1"), platform_campaign("")]

        result = sync_campaigns(context, {"clientId": client.id})

        assert result["synced"] == 1
        assert result["errors"] == 1
        assert repository.get_client(client.id).sync_status == SyncStatus.PARTIAL

    def test_vendor_failure_marks_client_failed(self, context, repository, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        adapter_factory.for_client(client.id).fail_with = RuntimeError("vendor down")

        with pytest.raises(RuntimeError):
            sync_campaigns(context, {"clientId": client.id})

        assert repository.get_client(client.id).sync_status == SyncStatus.FAILED

    def test_missing_client_id(self, context):
        with pytest.raises(ValidationError):
            sync_campaigns(context, {})

    def test_unknown_client(self, context):
        with pytest.raises(NotFoundError):
            sync_campaigns(context, {"clientId": "nope"})

    def test_refreshed_credentials_are_stored(self, context, repository, cipher, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        adapter = adapter_factory.for_client(client.id)
        adapter.refreshed_credentials = {"apiKey": "rotated-us1"}

        sync_campaigns(context, {"clientId": client.id})

        credential = repository.get_credential(client.id)
        decrypted = cipher.decrypt_credentials(
            EncryptedPayload(credential.ciphertext, credential.iv, credential.auth_tag)
        )
        assert decrypted == {"apiKey": "rotated-us1"}


class TestSyncAllCampaigns:
    def test_one_failing_client_does_not_stop_the_rest(self, context, repository, adapter_factory, make_client):
        healthy = make_client("Healthy", credentials=CREDENTIALS)
        broken = make_client("Broken", credentials=CREDENTIALS)
        adapter_factory.for_client(healthy.id).campaigns = [platform_campaign("c1")]
        adapter_factory.for_client(broken.id).fail_with = RuntimeError("boom")

        result = sync_all_campaigns(context, {})

        assert result == {"clients": 2, "succeeded": 1, "failed": 1}
        assert repository.get_client(healthy.id).sync_status == SyncStatus.SYNCED
        assert repository.get_client(broken.id).sync_status == SyncStatus.FAILED

    def test_only_active_clients(self, context, make_client):

        make_client("Paused", status=ClientStatus.PAUSED, credentials=CREDENTIALS)

        assert sync_all_campaigns(context, {}) == {"clients": 0, "succeeded": 0, "failed": 0}


class TestSyncLists:
    def test_upserts_lists(self, context, repository, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        adapter_factory.for_client(client.id).lists = [
            PlatformList(external_id="l1", name="Newsletter", member_count=120, open_rate=0.3),
            PlatformList(external_id="l2", name="VIP", member_count=5),
        ]

        assert sync_lists(context, {"clientId": client.id}) == {"clientId": client.id, "synced": 2}
        assert sync_lists(context, {"clientId": client.id})["synced"] == 2

        lists = {l.external_id: l for l in repository.list_audience_lists(client.id)}
        assert len(lists) == 2
        assert lists["l1"].member_count == 120
        assert lists["l1"].avg_open_rate == 0.3


class TestSyncMetrics:
    def _seed(self, repository, client):
        sent = repository.upsert_campaign(
            Campaign(client_id=client.id, external_id="s1", name="Sent", status=CampaignStatus.SENT, subject_line="Hi")
        )
        draft = repository.upsert_campaign(
            Campaign(client_id=client.id, external_id="d1", name="Draft", status=CampaignStatus.DRAFT)
        )
        return sent, draft

    def test_updates_sent_campaigns_only(self, context, repository, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        sent, draft = self._seed(repository, client)
        metrics = Metrics.from_counts(sent=200, unique_opens=50, bounces=4)
        adapter_factory.for_client(client.id).metrics = {"s1": metrics, "d1": metrics}

        result = sync_metrics(context, {"clientId": client.id})

        assert result == {"clientId": client.id, "updated": 1, "errors": 0}
        refreshed = repository.get_campaign(client.id, "s1")
        assert refreshed.metrics == metrics
        assert refreshed.subject_line == "Hi"
        assert refreshed.id == sent.id
        assert repository.get_campaign(client.id, "d1").metrics is None

    def test_campaign_filter_matches_mirror_or_vendor_id(self, context, repository, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        sent, _ = self._seed(repository, client)
        repository.upsert_campaign(
            Campaign(client_id=client.id, external_id="s2", name="Other", status=CampaignStatus.SENT)
        )
        adapter_factory.for_client(client.id).metrics = {
            "s1": Metrics.from_counts(sent=10),
            "s2": Metrics.from_counts(sent=10),
        }

        assert sync_metrics(context, {"clientId": client.id, "campaignId": sent.id})["updated"] == 1
        assert sync_metrics(context, {"clientId": client.id, "campaignId": "s2"})["updated"] == 1

    def test_per_campaign_errors_are_counted(self, context, repository, make_client):
        client = make_client(credentials=CREDENTIALS)
        self._seed(repository, client)

        assert sync_metrics(context, {"clientId": client.id}) == {"clientId": client.id, "updated": 0, "errors": 1}


class TestProcessSyncJob:
    def test_successful_job_run_is_completed(self, context, repository, adapter_factory, make_client):
        client = make_client(credentials=CREDENTIALS)
        adapter_factory.for_client(client.id).campaigns = [platform_campaign("c1")]

        output = process_sync_job(sync_job(JobName.SYNC_CAMPAIGNS, {"clientId": client.id}), context)

        (job_run,) = repository.list_job_runs()
        assert job_run.status == JobRunStatus.COMPLETED
        assert job_run.output == output
        assert job_run.input == {"clientId": client.id}
        assert job_run.completed_at is not None
        assert job_run.duration_ms >= 0

    def test_failed_job_run_records_error_and_reraises(self, context, repository):
        with pytest.raises(NotFoundError):
            process_sync_job(sync_job(JobName.SYNC_LISTS, {"clientId": "missing"}), context)

        (job_run,) = repository.list_job_runs()
        assert job_run.status == JobRunStatus.FAILED
        assert "missing" in job_run.error
        assert job_run.completed_at is not None

    def test_job_from_another_queue_fails(self, context, repository):

        job = Job(name=JobName.DETECT_ANOMALIES.value, queue=QueueName.SYNC.value, data={})
        with pytest.raises(JobError):
            process_sync_job(job, context)
        assert repository.list_job_runs()[0].status == JobRunStatus.FAILED


class TestConcurrentClientUpdates:
    def test_status_change_during_sync_is_kept(self, context, repository, adapter_factory, make_client):
        client = make_client(status=ClientStatus.PENDING, credentials=CREDENTIALS)
        adapter = adapter_factory.for_client(client.id)
        adapter.campaigns = [platform_campaign("c1")]
        adapter.before_fetch = lambda: verify_credentials(context, {"clientId": client.id})

        sync_campaigns(context, {"clientId": client.id})

        stored = repository.get_client(client.id)
        assert stored.status == ClientStatus.ACTIVE
        assert stored.sync_status == SyncStatus.SYNCED

    def test_verification_with_stale_client_keeps_sync_fields(self, context, repository, adapter_factory, make_client):
        client = make_client(status=ClientStatus.PENDING, credentials=CREDENTIALS)
        adapter_factory.for_client(client.id).campaigns = [platform_campaign("c1")]
        (stale,) = repository.list_clients([ClientStatus.PENDING])

        sync_campaigns(context, {"clientId": client.id})
        verify_client_credentials(context, stale)

        stored = repository.get_client(client.id)
        assert stored.status == ClientStatus.ACTIVE
        assert stored.sync_status == SyncStatus.SYNCED
        assert stored.last_sync_at is not None
