"""Verification queue processors: test stored credentials against the vendors."""

from dataclasses import replace
from typing import Any, Dict, Optional

from loguru import logger

from emailops.core.constants import AlertSeverity, AlertType, ClientStatus, JobName
from emailops.domain.models import Alert, Client
from emailops.jobs.definitions import parse_client_payload
from emailops.jobs.processors.base import run_job
from emailops.jobs.processors.context import ProcessorContext
from emailops.jobs.queue import Job
from emailops.utils.date_utils import utcnow


def _raise_credential_alert(
    context: ProcessorContext,
    client: Client,
    title: str,
    message: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> bool:
    """Create a HIGH credential alert unless one is already open for the client.

    Returns:
        True when a new alert was created
    """
    if context.repository.find_open_alert(client.id, AlertType.CREDENTIAL_ISSUE) is not None:
        logger.bind(client_id=client.id).debug("Credential alert already open, not raising another")
        return False
    context.repository.create_alert(
        Alert(
            client_id=client.id,
            type=AlertType.CREDENTIAL_ISSUE,
            severity=AlertSeverity.HIGH,
            title=title,
            message=message,
            metadata=metadata or {},
        )
    )
    return True


def _mark_credential(context: ProcessorContext, client_id: str, is_valid: bool) -> None:
    credential = context.repository.get_credential(client_id)
    if credential is not None:
        context.repository.save_credential(
            replace(credential, is_valid=is_valid, last_verified_at=utcnow())
        )


def verify_client_credentials(context: ProcessorContext, client: Client) -> Dict[str, Any]:
    """Verify one client's credential and reconcile client status and alerts."""
    log = logger.bind(client_id=client.id, platform=client.platform)
    log.info("Starting credential verification")

    credential = context.repository.get_credential(client.id)
    if credential is None:
        context.repository.set_client_status(client.id, ClientStatus.PENDING)
        alerted = _raise_credential_alert(
            context,
            client,
            "Missing Credentials",
            f'Client "{client.name}" has no credentials configured',
        )
        log.warning("Client has no credentials; moved to PENDING")
        return {"clientId": client.id, "valid": False, "reason": "missing", "alertCreated": alerted}

    try:
        adapter = context.adapter_for(client)
        result = adapter.test_connection()
    except Exception as e:
        _mark_credential(context, client.id, False)
        alerted = _raise_credential_alert(
            context,
            client,
            "Credential Verification Error",
            f"Error verifying credentials: {e}",
            {"error": str(e)},
        )
        log.error(f"Credential verification error: {e}")
        return {"clientId": client.id, "valid": False, "reason": "error", "alertCreated": alerted}

    if not result.success:
        _mark_credential(context, client.id, False)
        alerted = _raise_credential_alert(
            context,
            client,
            "Credential Verification Failed",
            result.message or f"Unable to verify credentials for {client.platform}",
            {"error": result.error},
        )
        log.warning(f"Credential verification failed: {result.error}")
        return {"clientId": client.id, "valid": False, "reason": "rejected", "alertCreated": alerted}

    _mark_credential(context, client.id, True)
    context.persist_refreshed_credentials(client, adapter)
    context.repository.set_client_status(client.id, ClientStatus.ACTIVE)
    resolved = context.repository.resolve_alerts(client.id, AlertType.CREDENTIAL_ISSUE)
    log.info(f"Credential verification successful, {resolved} alert(s) resolved")
    return {"clientId": client.id, "valid": True, "alertsResolved": resolved}


def verify_credentials(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, Any]:
    payload = parse_client_payload(data)
    return verify_client_credentials(context, context.require_client(payload.client_id))


def verify_all_credentials(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, Any]:
    """Verify every ACTIVE or PENDING client, each independently."""
    clients = context.repository.list_clients([ClientStatus.ACTIVE, ClientStatus.PENDING])
    logger.info(f"Starting credential verification for {len(clients)} clients")

    valid = 0
    invalid = 0
    failed = 0
    for client in clients:
        try:
            outcome = verify_client_credentials(context, client)
        except Exception as e:
            failed += 1
            logger.bind(client_id=client.id).error(f"Failed to verify client credentials: {e}")
            continue
        if outcome["valid"]:
            valid += 1
        else:
            invalid += 1

    logger.info(f"All credentials verification completed: {valid} valid, {invalid} invalid, {failed} errors")
    return {"clients": len(clients), "valid": valid, "invalid": invalid, "failed": failed}


VERIFICATION_HANDLERS = {
    JobName.VERIFY_CREDENTIALS.value: verify_credentials,
    JobName.VERIFY_ALL_CREDENTIALS.value: verify_all_credentials,
}


def process_verification_job(job: Job, context: ProcessorContext) -> Dict[str, Any]:
    return run_job(job, context, VERIFICATION_HANDLERS)
