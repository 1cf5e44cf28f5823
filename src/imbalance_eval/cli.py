"""
Command-line entry point for strategy comparisons.

Reads a CSV dataset and a YAML experiment configuration, holds out a
stratified test partition, runs one cross-validated grid search per
configured strategy and writes a JSON report.

Usage:
    imbalance-eval --config experiment.yaml --output report.json
    python -m imbalance_eval --config experiment.yaml --data data.csv --max-workers 4

On failure the report file holds ``{"status": "FAILED", "stage": ..., "errorMessage": ...}``
and the exit code is 1.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from imbalance_eval.comparison import report_to_dict, run_experiment, summary_frame
from imbalance_eval.config import load_experiment
from imbalance_eval.dataset import read_csv_dataset
from imbalance_eval.pool import WorkerPool
from imbalance_eval.splitting import class_balance_report
from imbalance_eval.trainers import PriorTrainer, XGBoostTrainer

logger = logging.getLogger(__name__)

TRAINERS = {
    "xgboost": XGBoostTrainer,
    "prior": PriorTrainer,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imbalance-eval",
        description="Compare class-imbalance strategies with cross-validated PR-AUC grid search.",
    )
    parser.add_argument("--config", required=True, help="Path to the YAML experiment configuration")
    parser.add_argument("--data", default=None,
                        help="CSV dataset path (overrides dataset.path in the configuration)")
    parser.add_argument("--output", default=None, help="Where to write the JSON report")
    parser.add_argument("--trainer", choices=sorted(TRAINERS), default="xgboost",
                        help="Classifier used for every candidate (default: xgboost)")
    parser.add_argument("--max-workers", type=int, default=None,
                        help="Worker pool size (default: the configuration's max_workers)")
    parser.add_argument("--backend", default=None,
                        help="joblib backend (default: the configuration's backend)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser


def _write_json(path: Optional[str], document: Dict[str, Any]) -> None:
    text = json.dumps(document, indent=2, default=str)
    if path is None:
        print(text)
        return
    with open(path, "w") as f:
        f.write(text)
    logger.info(f"Wrote report to {path}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    stage = "config"
    try:
        experiment = load_experiment(args.config)
        data_path = args.data or experiment.data_path
        if data_path is None:
            raise ValueError("No dataset path given (use --data or dataset.path in the configuration)")

        data = read_csv_dataset(data_path, experiment.schema)
        trainer = TRAINERS[args.trainer]()
        stage = "search"

        # flags override the pool settings of the first configured search
        first = next(iter(experiment.searches.values()))
        max_workers = args.max_workers if args.max_workers is not None else first.max_workers
        backend = args.backend or first.backend
        logger.info(f"Worker pool: max_workers={max_workers}, backend={backend}")

        with WorkerPool(max_workers=max_workers, backend=backend) as pool:
            reports, train, test = run_experiment(data, experiment, trainer, pool=pool)

        summary = summary_frame(reports)
        logger.info(f"Comparison summary:\n{summary.drop(columns=['best_params']).to_string(index=False)}")

        _write_json(args.output, {
            "status": "SUCCESS",
            "timestamp": datetime.utcnow().isoformat(),
            "trainer": args.trainer,
            "partitions": class_balance_report(
                {"full": data, "train": train, "test": test}
            ).to_dict(orient="records"),
            "reports": {name: report_to_dict(report) for name, report in reports.items()},
        })
        return 0

    except Exception as e:
        stage = getattr(e, "stage", stage)
        logger.error(f"Comparison failed at stage '{stage}': {e}")
        _write_json(args.output, {
            "status": "FAILED",
            "stage": stage,
            "errorType": type(e).__name__,
            "errorMessage": str(e),
            "timestamp": datetime.utcnow().isoformat(),
        })
        return 1


if __name__ == "__main__":
    sys.exit(main())
