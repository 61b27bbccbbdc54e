"""
Evidence Store Module.

This module keeps the artifacts behind each run: plan output and the
rendered configuration that was planned or applied.
"""

import json
import logging
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


class EvidenceStore:
    """
    Storage for run evidence.

    Files are laid out as YYYY/MM/<run_id>/<name>.
    """

    def __init__(self, storage_dir: Union[str, Path] = "evidence"):
        """
        Initialize the evidence store.

        Args:
            storage_dir: Directory to store evidence files
        """
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def store_evidence(self, data: Any, run_id: str = "unknown", name: Optional[str] = None) -> str:
        """
        Store evidence (file or data).

        Args:
            data: Path to an existing file, text, or a dict/list to save as JSON
            run_id: Run the evidence belongs to
            name: File name to store under; generated when omitted

        Returns:
            Path of the stored evidence
        """
        try:
            date_path = datetime.now(timezone.utc).strftime("%Y/%m")
            target_dir = self.storage_dir / date_path / run_id
            target_dir.mkdir(parents=True, exist_ok=True)

            if isinstance(data, Path) and data.exists():
                target_path = target_dir / (name or data.name)
                shutil.copy2(data, target_path)
                logger.info(f"Stored evidence file for run {run_id} at {target_path}")
                return str(target_path)

            if isinstance(data, (dict, list)):
                target_path = target_dir / (name or f"{uuid.uuid4()}.json")
                with open(target_path, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, default=str)
            else:
                target_path = target_dir / (name or f"{uuid.uuid4()}.txt")
                with open(target_path, "w", encoding="utf-8") as f:
                    f.write(str(data))

            logger.info(f"Stored evidence data for run {run_id} at {target_path}")
            return str(target_path)

        except OSError as e:
            logger.error(f"Failed to store evidence: {e}")
            raise

    def retrieve_evidence(self, evidence_path: str) -> Optional[Any]:
        """
        Retrieve stored evidence by path.

        Args:
            evidence_path: Path returned by store_evidence

        Returns:
            Parsed JSON for .json files, text otherwise; None if missing
        """
        path = Path(evidence_path)
        if not path.exists():
            return None

        with open(path, encoding="utf-8") as f:
            if path.suffix == ".json":
                return json.load(f)
            return f.read()

    def get_evidence_stats(self) -> Dict[str, Any]:
        """Count and size of stored evidence files."""
        files = [p for p in self.storage_dir.rglob("*") if p.is_file()]
        runs = {p.parent.name for p in files}
        return {
            "total_files": len(files),
            "total_size_bytes": sum(p.stat().st_size for p in files),
            "total_runs": len(runs),
        }
