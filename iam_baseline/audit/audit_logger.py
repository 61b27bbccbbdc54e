"""
Audit Logging Module.

This module records every operator run (validate, plan, apply, verify)
step by step in an append-only log.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..models import AuditRecord, RunAction

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Append-only logger for run steps.

    Persists audit records as JSON lines in one file per UTC day.
    """

    def __init__(self, audit_dir: Union[str, Path] = "audit_logs"):
        """
        Initialize the audit logger.

        Args:
            audit_dir: Directory to store audit logs
        """
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)

    def log_event(self, record: AuditRecord) -> str:
        """
        Log an audit event.

        Args:
            record: The audit record to log

        Returns:
            The record ID
        """
        try:
            date_str = record.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%d")
            log_file = self.audit_dir / f"audit_{date_str}.jsonl"

            with open(log_file, "a", encoding="utf-8") as f:
                data = record.model_dump(mode="json")
                f.write(json.dumps(data) + "\n")

            logger.info(f"Logged audit event {record.id} ({record.action.value} {record.step})")
            return record.id

        except OSError as e:
            logger.error(f"Failed to log audit event: {e}")
            raise

    def get_events(
        self,
        action: Optional[RunAction] = None,
        run_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditRecord]:
        """
        Retrieve audit events with filtering, most recent first.

        Args:
            action: Filter by run action
            run_id: Filter by run ID
            start_date: Filter by start date
            end_date: Filter by end date
            limit: Maximum number of records to return

        Returns:
            List of matching AuditRecords
        """
        results = []
        log_files = sorted(self.audit_dir.glob("audit_*.jsonl"), reverse=True)

        for log_file in log_files:
            if len(results) >= limit:
                break

            try:
                with open(log_file, encoding="utf-8") as f:
                    lines = f.readlines()
            except OSError as e:
                logger.error(f"Failed to read log file {log_file}: {e}")
                continue

            for line in reversed(lines):
                if len(results) >= limit:
                    break
                if not line.strip():
                    continue

                try:
                    record = AuditRecord(**json.loads(line))
                except ValueError as e:
                    logger.warning(f"Failed to parse audit record in {log_file}: {e}")
                    continue

                if action and record.action != action:
                    continue
                if run_id and record.run_id != run_id:
                    continue
                if start_date and record.timestamp < _aware(start_date):
                    continue
                if end_date and record.timestamp > _aware(end_date):
                    continue

                results.append(record)

        return results

    def generate_run_report(self, start_date: datetime, end_date: datetime) -> Dict[str, Any]:
        """
        Summarize runs for a given period.

        Args:
            start_date: Start of the reporting period
            end_date: End of the reporting period

        Returns:
            Dictionary containing the run report
        """
        events = self.get_events(start_date=start_date, end_date=end_date, limit=10000)

        runs: Dict[str, Dict[str, Any]] = {}
        for event in events:
            run = runs.setdefault(
                event.run_id or event.id,
                {"action": event.action.value, "success": True, "steps": 0},
            )
            run["steps"] += 1
            if not event.success:
                run["success"] = False

        failed_runs = [run_id for run_id, run in runs.items() if not run["success"]]
        report = {
            "period": {"start": start_date.isoformat(), "end": end_date.isoformat()},
            "summary": {
                "total_runs": len(runs),
                "total_steps": len(events),
                "failed_runs": len(failed_runs),
                "runs_by_action": _count(run["action"] for run in runs.values()),
            },
            "failed_run_ids": failed_runs,
            "recommendations": [],
        }

        if failed_runs:
            report["recommendations"].append("Review failed runs before the next apply")

        return report


def _aware(value: datetime) -> datetime:
    # Records are stored in UTC; naive filter bounds are taken as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _count(values) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return counts
