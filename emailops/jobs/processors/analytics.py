"""Analytics queue processors: industry benchmarks and performance anomalies.

Rates produced here are percentages (0-100), unlike the fractional rates on
``Metrics``.
"""

from typing import Any, Dict, List, Optional

import pandas as pd
from loguru import logger

from emailops.core.constants import (
    ANOMALY_LOOKBACK_DAYS,
    ANOMALY_MIN_CAMPAIGNS,
    ANOMALY_SAMPLE_SIZE,
    BOUNCE_RATE_ALERT_FACTOR,
    DEFAULT_BENCHMARK_BOUNCE_RATE,
    DEFAULT_BENCHMARK_OPEN_RATE,
    DEFAULT_INDUSTRY,
    OPEN_RATE_ALERT_FACTOR,
    AlertSeverity,
    AlertType,
    CampaignStatus,
    ClientStatus,
    JobName,
)
from emailops.domain.models import Alert, Campaign, Client, IndustryBenchmark
from emailops.jobs.definitions import parse_anomaly_payload, parse_benchmark_payload
from emailops.jobs.processors.base import run_job
from emailops.jobs.processors.context import ProcessorContext
from emailops.jobs.queue import Job
from emailops.utils.date_utils import days_ago, utcnow

METRIC_COLUMNS = ["sent", "unique_opens", "unique_clicks", "bounces", "unsubscribes"]

# Benchmark metric name -> numerator column
BENCHMARK_METRICS = {
    "open_rate": "unique_opens",
    "click_rate": "unique_clicks",
    "bounce_rate": "bounces",
    "unsubscribe_rate": "unsubscribes",
}


def _percent(numerator: float, sent: float) -> float:
    return float(numerator) / float(sent) * 100 if sent > 0 else 0.0


def _metrics_frame(campaigns: List[Campaign], **columns: Any) -> pd.DataFrame:
    rows = []
    for campaign in campaigns:
        if campaign.metrics is None:
            continue
        row = {column: getattr(campaign.metrics, column) for column in METRIC_COLUMNS}
        row.update(columns)
        rows.append(row)
    return pd.DataFrame(rows, columns=METRIC_COLUMNS + list(columns))


def _industry(client: Client) -> str:
    return client.industry or DEFAULT_INDUSTRY


def calculate_benchmarks(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, Any]:
    """Aggregate SENT campaigns of ACTIVE clients into per-industry benchmarks.

    Only campaigns sent within the period and carrying metrics count. One
    row per (industry, metric) is upserted with the campaign count as
    sample size.
    """
    payload = parse_benchmark_payload(data)
    since = days_ago(payload.days)
    logger.info(f"Starting {payload.period} benchmark calculation (since {since.isoformat()})")

    frames = []
    for client in context.repository.list_clients([ClientStatus.ACTIVE]):
        campaigns = context.repository.list_campaigns(client.id, status=CampaignStatus.SENT, sent_after=since)
        frame = _metrics_frame(campaigns, industry=_industry(client))
        if not frame.empty:
            frames.append(frame)

    if not frames:
        logger.info("No sent campaigns with metrics in period, no benchmarks updated")
        return {"period": payload.period, "industries": 0, "benchmarks": 0}

    campaigns_df = pd.concat(frames, ignore_index=True)
    totals = campaigns_df.groupby("industry").agg(
        sent=("sent", "sum"),
        unique_opens=("unique_opens", "sum"),
        unique_clicks=("unique_clicks", "sum"),
        bounces=("bounces", "sum"),
        unsubscribes=("unsubscribes", "sum"),
        sample_size=("sent", "size"),
    )

    written = 0
    now = utcnow()
    for industry, row in totals.iterrows():
        for metric, column in BENCHMARK_METRICS.items():
            context.repository.upsert_benchmark(
                IndustryBenchmark(
                    industry=str(industry),
                    metric=metric,
                    value=_percent(row[column], row["sent"]),
                    sample_size=int(row["sample_size"]),
                    period=payload.period,
                    updated_at=now,
                )
            )
            written += 1

    logger.info(f"Benchmark calculation completed: {len(totals)} industries, {written} benchmarks")
    return {"period": payload.period, "industries": len(totals), "benchmarks": written}


def _benchmark_value(context: ProcessorContext, industry: str, metric: str, default: float) -> float:
    benchmark = context.repository.get_benchmark(industry, metric)
    # A zero benchmark carries no signal; fall back like a missing one
    return benchmark.value if benchmark is not None and benchmark.value else default


def _raise_anomaly(
    context: ProcessorContext,
    client: Client,
    metric: str,
    severity: AlertSeverity,
    title: str,
    message: str,
    value: float,
    benchmark: float,
) -> bool:
    if context.repository.find_open_alert(client.id, AlertType.PERFORMANCE_ANOMALY, metric) is not None:
        return False
    context.repository.create_alert(
        Alert(
            client_id=client.id,
            type=AlertType.PERFORMANCE_ANOMALY,
            severity=severity,
            title=title,
            message=message,
            metadata={"metric": metric, "value": value, "benchmark": benchmark},
        )
    )
    logger.bind(client_id=client.id).warning(title)
    return True


def check_client_anomalies(context: ProcessorContext, client: Client) -> Optional[int]:
    """Compare the client's recent sends with its industry benchmarks.

    Returns:
        Number of alerts created, or None when the client has too few recent sends
    """
    since = days_ago(ANOMALY_LOOKBACK_DAYS)
    campaigns = [
        c
        for c in context.repository.list_campaigns(client.id, status=CampaignStatus.SENT, sent_after=since)
        if c.metrics is not None
    ][:ANOMALY_SAMPLE_SIZE]
    if len(campaigns) < ANOMALY_MIN_CAMPAIGNS:
        return None

    totals = _metrics_frame(campaigns)[METRIC_COLUMNS].sum()
    open_rate = _percent(totals["unique_opens"], totals["sent"])
    bounce_rate = _percent(totals["bounces"], totals["sent"])

    industry = _industry(client)
    open_benchmark = _benchmark_value(context, industry, "open_rate", DEFAULT_BENCHMARK_OPEN_RATE)
    bounce_benchmark = _benchmark_value(context, industry, "bounce_rate", DEFAULT_BENCHMARK_BOUNCE_RATE)

    created = 0
    if open_rate < open_benchmark * OPEN_RATE_ALERT_FACTOR:
        created += _raise_anomaly(
            context,
            client,
            "open_rate",
            AlertSeverity.MEDIUM,
            "Low Open Rate Detected",
            f"Open rate ({open_rate:.1f}%) is significantly below industry benchmark ({open_benchmark:.1f}%)",
            open_rate,
            open_benchmark,
        )
    if bounce_rate > bounce_benchmark * BOUNCE_RATE_ALERT_FACTOR:
        created += _raise_anomaly(
            context,
            client,
            "bounce_rate",
            AlertSeverity.HIGH,
            "High Bounce Rate Detected",
            f"Bounce rate ({bounce_rate:.1f}%) is significantly above industry benchmark ({bounce_benchmark:.1f}%)",
            bounce_rate,
            bounce_benchmark,
        )
    return created


def detect_anomalies(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, Any]:
    payload = parse_anomaly_payload(data)
    clients = context.repository.list_clients([ClientStatus.ACTIVE])
    if payload.client_id:
        clients = [c for c in clients if c.id == payload.client_id]
    logger.info(f"Starting anomaly detection for {len(clients)} clients")

    checked = 0
    alerts = 0
    for client in clients:
        created = check_client_anomalies(context, client)
        if created is None:
            continue
        checked += 1
        alerts += created

    logger.info(f"Anomaly detection completed: {checked} clients checked, {alerts} alerts created")
    return {"clients": len(clients), "checked": checked, "alertsCreated": alerts}


ANALYTICS_HANDLERS = {
    JobName.CALCULATE_BENCHMARKS.value: calculate_benchmarks,
    JobName.DETECT_ANOMALIES.value: detect_anomalies,
}


def process_analytics_job(job: Job, context: ProcessorContext) -> Dict[str, Any]:
    return run_job(job, context, ANALYTICS_HANDLERS)
