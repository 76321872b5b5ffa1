"""
File-backed scoring run.

Loads the cleaned response table and the per-measure rubric files, runs the
scoring engine, and saves the scored table.

Pipeline steps:
  Step 1 — Load responses and rubrics
  Step 2 — Score (engine module)
  Step 3 — Save scored table and print summary
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

import pandas as pd

from .config import RESPONSES_PATH, RUBRICS_DIR, SCORED_PATH
from .engine import score_responses


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------

def load_responses(responses_path: Path = RESPONSES_PATH) -> pd.DataFrame:
    """
    Load the cleaned long-format response table.

    Values are read as text so that identity items keep their original
    form; numeric coercion happens inside the engine.

    Raises:
        FileNotFoundError: No response file at ``responses_path``.
    """
    if not responses_path.exists():
        raise FileNotFoundError(
            f"Response table not found: {responses_path}\n"
            "Run the response cleaning step first."
        )
    responses_df = pd.read_csv(responses_path, dtype={"value": str, "item_id": str})
    print(f"Loaded {len(responses_df):,} response rows from {responses_path.name}")
    return responses_df


def load_rubrics(rubric_dir: Path = RUBRICS_DIR) -> pd.DataFrame:
    """
    Load and concatenate one rubric CSV per measure.

    A rubric row with no ``survey_pattern`` (or legacy ``file_name``) takes
    the rubric file's stem, escaped so it matches literally: ``phq9.csv``
    scores surveys named like ``phq9``.

    Args:
        rubric_dir: Directory of ``*.csv`` rubric files.

    Returns:
        Concatenated raw rubric table.

    Raises:
        FileNotFoundError: Directory holds no rubric files.
    """
    candidates = sorted(rubric_dir.glob("*.csv"))
    if not candidates:
        raise FileNotFoundError(f"No rubric files found in {rubric_dir}")

    frames: list[pd.DataFrame] = []
    for path in candidates:
        rubric_df = pd.read_csv(path, dtype={"include": str, "transform": str})
        if "survey_pattern" not in rubric_df.columns:
            rubric_df["survey_pattern"] = rubric_df.get("file_name", pd.Series(dtype=str))
        rubric_df["survey_pattern"] = rubric_df["survey_pattern"].fillna(re.escape(path.stem))
        frames.append(rubric_df.drop(columns=["file_name"], errors="ignore"))
        print(f"  Rubric {path.name}: {len(rubric_df)} items")

    rubric_df = pd.concat(frames, ignore_index=True)
    print(f"Loaded {len(candidates)} rubric file(s), {len(rubric_df):,} rows")
    return rubric_df


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def print_scoring_summary(scored_df: pd.DataFrame) -> None:
    """Print per-scale row counts and missing-score counts."""
    print(f"\nScored Table Summary ({len(scored_df):,} rows):")
    if scored_df.empty:
        print("  (no scores produced)")
        return

    by_scale = scored_df.groupby(["survey_name", "scored_scale"], sort=True)
    for (survey, scale), group in by_scale:
        n_missing = int(group["score"].isna().sum())
        method = ", ".join(sorted(group["method"].astype(str).unique()))
        print(
            f"  {survey:<20} {scale:<24} subjects={group['subject_id'].nunique():<5} "
            f"missing={n_missing:<4} method={method}"
        )


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def run_scoring_pipeline(
    responses_path: Path = RESPONSES_PATH,
    rubric_dir: Path = RUBRICS_DIR,
    scored_path: Path = SCORED_PATH,
    exclude_missing_mean: bool | None = None,
    exclude_missing_other: bool | None = None,
) -> dict:
    """
    Execute a complete scoring run from files on disk.

    Args:
        responses_path: Cleaned long-format response CSV.
        rubric_dir: Directory of per-measure rubric CSVs.
        scored_path: Path to write the scored table CSV.
        exclude_missing_mean: Override the mean missing-value policy.
        exclude_missing_other: Override the non-mean missing-value policy.

    Returns:
        Dict with summary: n_responses, n_rubric_rows, n_scores,
        n_missing_scores, n_diagnostics, duration and the output path.

    Raises:
        FileNotFoundError: Response file or rubric files absent.
        ScoringConfigError: Rubric defect; nothing is written.
    """
    pipeline_start = datetime.now()
    sep = "=" * 70

    print(f"\n{sep}")
    print("SCORING PIPELINE — START")
    print(f"  Responses: {responses_path}")
    print(f"  Rubrics:   {rubric_dir}")
    print(f"{sep}\n")

    # ------------------------------------------------------------------
    # Step 1: Load inputs
    # ------------------------------------------------------------------
    print(f"{'—'*50}")
    print("STEP 1: Load Responses and Rubrics")
    print(f"{'—'*50}")
    responses_df = load_responses(responses_path)
    rubric_df = load_rubrics(rubric_dir)

    # ------------------------------------------------------------------
    # Step 2: Score
    # ------------------------------------------------------------------
    print(f"\n{'—'*50}")
    print("STEP 2: Rubric Scoring")
    print(f"{'—'*50}")
    policy = {}
    if exclude_missing_mean is not None:
        policy["exclude_missing_mean"] = exclude_missing_mean
    if exclude_missing_other is not None:
        policy["exclude_missing_other"] = exclude_missing_other
    result = score_responses(responses_df, rubric_df, **policy)
    scored_df = result.table

    # ------------------------------------------------------------------
    # Step 3: Save
    # ------------------------------------------------------------------
    scored_path.parent.mkdir(parents=True, exist_ok=True)
    scored_df.to_csv(scored_path, index=False)
    print(f"\nScored table saved: {scored_path}")
    print_scoring_summary(scored_df)

    duration = (datetime.now() - pipeline_start).total_seconds()

    summary = {
        "n_responses": len(responses_df),
        "n_rubric_rows": len(rubric_df),
        "n_scores": len(scored_df),
        "n_missing_scores": int(scored_df["score"].isna().sum()) if len(scored_df) else 0,
        "n_diagnostics": len(result.diagnostics),
        "duration_seconds": round(duration, 1),
        "output_files": {
            "scored_table": str(scored_path),
        },
    }

    print(f"\n{sep}")
    print("SCORING PIPELINE — COMPLETE")
    print(f"  Duration:           {duration:.1f}s")
    print(f"  Response rows:      {summary['n_responses']:,}")
    print(f"  Scores produced:    {summary['n_scores']:,}")
    print(f"  Missing scores:     {summary['n_missing_scores']:,}")
    print(f"{sep}\n")

    return summary
