"""Loading observation batches and records from disk."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from apptrail.tracker.models import ApplicationRecord, Observation


class ObservationLoader:
    """Load and validate observation batches from YAML or JSON.

    A batch file is either a list of observations or a mapping with an
    ``observations`` key. Validation happens here, once, so the resolvers
    downstream can rely on well-typed fields.
    """

    def load_observations(self, path: Path | str) -> list[Observation]:
        """Load and validate an observation batch."""
        data = self._load(Path(path))
        if isinstance(data, dict):
            data = data.get("observations", [])
        if not isinstance(data, list):
            raise ValueError(f"Observation batch must be a list: {path}")

        # pydantic.ValidationError propagates: malformed evidence is rejected here
        return [Observation.model_validate(item) for item in data]

    def load_records(self, path: Path | str) -> list[ApplicationRecord]:
        """Load one record (mapping) or several (list) from a file."""
        data = self._load(Path(path))
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise ValueError(f"Records file must hold a mapping or a list: {path}")
        return [ApplicationRecord.from_dict(item) for item in data]

    def _load(self, path: Path) -> Any:
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        suffix = path.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            return self._load_yaml(path)
        if suffix == ".json":
            return self._load_json(path)

        try:
            return self._load_json(path)
        except ValueError:
            return self._load_yaml(path)

    def _load_yaml(self, path: Path) -> Any:
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML file: {path}") from e
        return [] if data is None else data

    def _load_json(self, path: Path) -> Any:
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON file: {path}") from e
