"""Deployment record persistence."""

import json
from pathlib import Path
from typing import Any

from edgeship.core.exceptions import DeploymentError
from edgeship.core.logging import StructuredLogger

logger = StructuredLogger(__name__)


def _record_id(record: Any) -> str:
    if isinstance(record, dict):
        return str(record.get("deploymentId") or record.get("deployment_id"))
    return str(record.deployment_id)


def _record_data(record: Any) -> dict[str, Any]:
    return record if isinstance(record, dict) else record.to_dict()


class DeploymentRecordStore:
    """One JSON file per deployment attempt in a local directory.

    Saving is best-effort: failures are logged and reported as ``None``
    so that record keeping can never fail a deployment.
    """

    def __init__(self, directory: str | Path):
        """Initialize the record store.

        Args:
            directory: Directory holding ``<deployment_id>.json`` files.
                Created on first save.
        """
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def save(self, record: Any) -> Path | None:
        """Persist a record.

        Args:
            record: A DeploymentResult (anything with ``to_dict()``) or a dict
                carrying ``deploymentId``

        Returns:
            Path of the written file, or None if it could not be written
        """
        try:
            deployment_id = _record_id(record)
            path = self._directory / f"{deployment_id}.json"
            content = json.dumps(_record_data(record), indent=2, default=str)
            self._directory.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        except (OSError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Failed to save deployment record", directory=str(self._directory), error=str(e))
            return None

        logger.debug("Saved deployment record", id=deployment_id, path=str(path))
        return path

    def load(self, deployment_id: str) -> dict[str, Any]:
        """Load a record.

        Raises:
            DeploymentError: If the record does not exist or cannot be read
        """
        path = self._directory / f"{deployment_id}.json"
        if not path.exists():
            raise DeploymentError(f"Deployment record not found: {deployment_id}")

        try:
            with open(path) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise DeploymentError(f"Failed to load deployment record {deployment_id}: {e}")

    def list(self, limit: int = 20) -> list[dict[str, Any]]:
        """List records, newest first. Unreadable files are skipped."""
        if not self._directory.is_dir():
            return []

        records: list[dict[str, Any]] = []
        for path in self._directory.glob("*.json"):
            try:
                with open(path) as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable record", path=str(path), error=str(e))
                continue
            if isinstance(data, dict):
                records.append(data)

        records.sort(key=lambda r: str(r.get("timestamp", "")), reverse=True)
        return records[:limit]
