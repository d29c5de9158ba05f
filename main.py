"""Projection solver - entry point for the configured problems.

Usage:
    uv run python main.py
    uv run python main.py problem=heated_cavity problem.params.Ra=1e4
    uv run python main.py -m problem.convergence.test_type=spatial,temporal
"""

import logging
import os
import sys
from pathlib import Path

import hydra
import mlflow
from dotenv import load_dotenv
from hydra.errors import InstantiationException
from hydra.utils import instantiate
from omegaconf import DictConfig, OmegaConf

load_dotenv()
sys.path.insert(0, str(Path(__file__).parent / "src"))

from rmhd.exceptions import ProjectionSolverError  # noqa: E402

log = logging.getLogger(__name__)


def get_experiment_name(cfg: DictConfig) -> str:
    """Build full experiment name with optional prefix."""
    name = cfg.experiment_name
    prefix = cfg.mlflow.get("project_prefix", "")
    if prefix and not name.startswith("/"):
        return f"{prefix}/{name}"
    return name


def setup_mlflow(cfg: DictConfig) -> str:
    """Setup MLflow tracking and return experiment name."""
    tracking_uri = cfg.mlflow.get("tracking_uri", "./mlruns")
    os.environ["MLFLOW_TRACKING_URI"] = str(tracking_uri)
    mlflow.set_tracking_uri(tracking_uri)

    experiment_name = get_experiment_name(cfg)
    mlflow.set_experiment(experiment_name)
    return experiment_name


def run_problem(cfg: DictConfig) -> str:
    """Build the configured problem, run it and log to MLflow. Returns run_id."""
    problem = instantiate(cfg.problem, _convert_="all")
    name = problem.name
    params = problem.params
    run_name = f"{name}_{params.nx}x{params.ny}"

    with mlflow.start_run(run_name=run_name, tags={"problem": name}) as run:
        mlflow.log_params(params.to_mlflow())
        mlflow.log_dict(OmegaConf.to_container(cfg), "config.yaml")

        log.info(f"Running {name}: {params.problem_type}, {params.nx}x{params.ny} cells")
        result = problem.run()
        mlflow.log_metrics(problem.session.metrics.to_mlflow())
        if hasattr(result, "to_dataframe"):
            mlflow.log_table(result.to_dataframe(), "convergence_table.json")

        metrics = problem.session.metrics
        log.info(f"Done: {metrics.n_steps} steps to t={metrics.final_time:.4f}, time={metrics.wall_time_seconds:.2f}s")
        return run.info.run_id


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Main entry point."""
    log.info(f"Problem: {cfg.problem._target_}")
    log.info(f"MLflow experiment: {setup_mlflow(cfg)}")
    try:
        run_problem(cfg)
    except ProjectionSolverError as exc:
        log.error(f"Run aborted: {exc}")
        sys.exit(1)
    except InstantiationException as exc:
        if not isinstance(exc.__cause__, ProjectionSolverError):
            raise
        log.error(f"Invalid configuration: {exc.__cause__}")
        sys.exit(1)


if __name__ == "__main__":
    main()
