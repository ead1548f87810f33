"""Sync queue processors: mirror campaigns, lists and metrics from the vendors."""

from dataclasses import replace
from typing import Any, Dict, Optional

from loguru import logger

from emailops.core.constants import SYNC_PAGE_SIZE, CampaignStatus, ClientStatus, JobName, SyncStatus
from emailops.domain.models import AudienceList, Campaign, Client, PaginationOptions, PlatformCampaign
from emailops.jobs.definitions import parse_client_payload, parse_metrics_payload
from emailops.jobs.processors.base import run_job
from emailops.jobs.processors.context import ProcessorContext
from emailops.jobs.queue import Job
from emailops.utils.date_utils import utcnow


def _to_mirror(client_id: str, item: PlatformCampaign, existing: Optional[Campaign] = None) -> Campaign:
    metrics = item.metrics if item.metrics is not None else (existing.metrics if existing else None)
    return Campaign(
        client_id=client_id,
        external_id=item.external_id,
        name=item.name,
        status=item.status,
        subject_line=item.subject_line,
        preview_text=item.preview_text,
        from_name=item.from_name,
        from_email=item.from_email,
        content_html=item.content_html,
        content_text=item.content_text,
        list_id=item.list_id,
        list_name=item.list_name,
        scheduled_at=item.scheduled_at,
        sent_at=item.sent_at,
        metrics=metrics,
        metadata=dict(item.metadata or {}),
        synced_at=utcnow(),
    )


def _mark_sync_failed(context: ProcessorContext, client_id: str) -> None:
    context.repository.update_client_sync(client_id, SyncStatus.FAILED)


def sync_client_campaigns(context: ProcessorContext, client: Client) -> Dict[str, Any]:
    """Upsert the first page of the client's campaigns into the mirror.

    Per-campaign failures are counted, not raised; the client ends SYNCED
    when none failed and PARTIAL otherwise.
    """
    log = logger.bind(client_id=client.id, platform=client.platform)
    log.info("Starting campaign sync")

    adapter = context.adapter_for(client)
    page = adapter.get_campaigns(PaginationOptions(page=1, limit=SYNC_PAGE_SIZE))

    synced = 0
    errors = 0
    for item in page.items:
        try:
            existing = context.repository.get_campaign(client.id, item.external_id)
            context.repository.upsert_campaign(_to_mirror(client.id, item, existing))
            synced += 1
        except Exception as e:
            errors += 1
            log.error(f"Failed to sync campaign {item.external_id}: {e}")

    context.repository.update_client_sync(
        client.id,
        SyncStatus.SYNCED if errors == 0 else SyncStatus.PARTIAL,
        last_sync_at=utcnow(),
    )
    context.persist_refreshed_credentials(client, adapter)

    log.info(f"Campaign sync completed: {synced} synced, {errors} errors, {len(page.items)} fetched")
    return {"clientId": client.id, "synced": synced, "errors": errors, "total": len(page.items)}


def sync_campaigns(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, Any]:
    payload = parse_client_payload(data)
    with context.client_locks.hold(payload.client_id):
        client = context.require_client(payload.client_id)
        try:
            return sync_client_campaigns(context, client)
        except Exception:
            _mark_sync_failed(context, client.id)
            raise


def sync_all_campaigns(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, Any]:
    """Sync every ACTIVE client; one client's failure never stops the others."""
    clients = context.repository.list_clients([ClientStatus.ACTIVE])
    logger.info(f"Starting campaign sync for {len(clients)} active clients")

    succeeded = 0
    failed = 0
    for client in clients:
        try:
            sync_campaigns(context, {"clientId": client.id})
            succeeded += 1
        except Exception as e:
            failed += 1
            logger.bind(client_id=client.id).error(f"Failed to sync client campaigns: {e}")

    logger.info(f"All campaigns sync completed: {succeeded} succeeded, {failed} failed")
    return {"clients": len(clients), "succeeded": succeeded, "failed": failed}


def sync_lists(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, Any]:
    payload = parse_client_payload(data)
    with context.client_locks.hold(payload.client_id):
        client = context.require_client(payload.client_id)
        log = logger.bind(client_id=client.id, platform=client.platform)
        log.info("Starting list sync")

        adapter = context.adapter_for(client)
        synced = 0
        for item in adapter.get_lists():
            context.repository.upsert_list(
                AudienceList(
                    client_id=client.id,
                    external_id=item.external_id,
                    name=item.name,
                    member_count=item.member_count,
                    unsubscribe_count=item.unsubscribe_count or 0,
                    cleaned_count=item.cleaned_count or 0,
                    avg_open_rate=item.open_rate,
                    avg_click_rate=item.click_rate,
                    metadata=dict(item.metadata or {}),
                    synced_at=utcnow(),
                )
            )
            synced += 1

        context.persist_refreshed_credentials(client, adapter)
        log.info(f"List sync completed: {synced} lists")
        return {"clientId": client.id, "synced": synced}


def sync_metrics(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, Any]:
    """Refresh the metrics snapshot of the client's SENT campaigns.

    ``campaignId`` narrows the run to one campaign, matched on the mirror id
    or the vendor id. Only ``metrics`` and ``synced_at`` are written.
    """
    payload = parse_metrics_payload(data)
    with context.client_locks.hold(payload.client_id):
        client = context.require_client(payload.client_id)
        log = logger.bind(client_id=client.id, platform=client.platform)

        campaigns = context.repository.list_campaigns(client.id, status=CampaignStatus.SENT)
        if payload.campaign_id:
            campaigns = [c for c in campaigns if payload.campaign_id in (c.id, c.external_id)]
        log.info(f"Starting metrics sync for {len(campaigns)} sent campaigns")

        adapter = context.adapter_for(client)
        updated = 0
        errors = 0
        for campaign in campaigns:
            try:
                metrics = adapter.get_campaign_metrics(campaign.external_id)
                context.repository.upsert_campaign(replace(campaign, metrics=metrics, synced_at=utcnow()))
                updated += 1
            except Exception as e:
                errors += 1
                log.error(f"Failed to sync metrics for campaign {campaign.external_id}: {e}")

        context.persist_refreshed_credentials(client, adapter)
        log.info(f"Metrics sync completed: {updated} updated, {errors} errors")
        return {"clientId": client.id, "updated": updated, "errors": errors}


SYNC_HANDLERS = {
    JobName.SYNC_CAMPAIGNS.value: sync_campaigns,
    JobName.SYNC_ALL_CAMPAIGNS.value: sync_all_campaigns,
    JobName.SYNC_LISTS.value: sync_lists,
    JobName.SYNC_METRICS.value: sync_metrics,
}


def process_sync_job(job: Job, context: ProcessorContext) -> Dict[str, Any]:
    return run_job(job, context, SYNC_HANDLERS)
