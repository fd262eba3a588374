"""Contrat du "stream frame" (DataFrame canonique par point).

Le Stream Builder produit un DataFrame avec une ligne par point et les colonnes
de `STREAM_COLUMNS`. Ce module:
- definit le schema stable + invariants (distance et temps non decroissants)
- valide les entrees aux frontieres service/API

Le moteur ne valide pas lui-meme: la validation est appelee une fois par le
service, juste apres la construction du flux.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd


SCHEMA_VERSION = "v1"


STREAM_COLUMNS: tuple[str, ...] = (
    "lat",
    "lng",
    "elevation",
    "speed",
    "power",
    "heart_rate",
    "cadence",
    "distance_m",
    "elapsed_s",
)


# Canaux capteurs: toujours presents, 0.0 si absents.
SENSOR_COLUMNS: tuple[str, ...] = ("elevation", "speed", "power", "heart_rate", "cadence")


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationReport:
    ok: bool
    issues: list[ValidationIssue]

    def raise_for_issues(self) -> None:
        if self.ok:
            return
        lines = ["Echec de validation du contrat stream frame:"]
        for issue in self.issues:
            lines.append(f"- {issue.code}: {issue.message}")
        raise ValueError("\n".join(lines))


def _non_monotone(values: pd.Series) -> bool:
    arr = pd.to_numeric(values, errors="coerce").to_numpy(dtype=float)
    arr = arr[np.isfinite(arr)]
    if arr.size < 2:
        return False
    # Autorise un bruit numerique minime.
    return bool(np.any(np.diff(arr) < -1e-6))


def validate_stream_frame(
    frame: pd.DataFrame,
    *,
    require_columns: tuple[str, ...] = STREAM_COLUMNS,
) -> ValidationReport:
    issues: list[ValidationIssue] = []

    if not isinstance(frame, pd.DataFrame):
        return ValidationReport(
            ok=False,
            issues=[ValidationIssue(code="type", message="frame doit etre un pandas.DataFrame")],
        )

    missing = [c for c in require_columns if c not in frame.columns]
    if missing:
        issues.append(
            ValidationIssue(
                code="missing_columns",
                message=f"Colonnes requises manquantes: {', '.join(missing)}",
                details={"missing": missing},
            )
        )
        return ValidationReport(ok=False, issues=issues)

    if _non_monotone(frame["distance_m"]):
        issues.append(
            ValidationIssue(
                code="distance_non_monotone",
                message="distance_m doit etre non-decroissante (monotone)",
            )
        )
    if _non_monotone(frame["elapsed_s"]):
        issues.append(
            ValidationIssue(
                code="elapsed_non_monotone",
                message="elapsed_s doit etre non-decroissant (monotone)",
            )
        )

    present = [c for c in SENSOR_COLUMNS if c in frame.columns]
    if present:
        values = frame[list(present)].to_numpy(dtype=float)
        if values.size and not np.all(np.isfinite(values)):
            issues.append(
                ValidationIssue(
                    code="sensor_not_finite",
                    message="Les canaux capteurs doivent etre resolus (pas de NaN/inf)",
                )
            )

    return ValidationReport(ok=(len(issues) == 0), issues=issues)


def assert_stream_frame_contract(frame: pd.DataFrame, **kwargs: Any) -> None:
    """Valide et leve ValueError en cas d'echec."""

    validate_stream_frame(frame, **kwargs).raise_for_issues()
