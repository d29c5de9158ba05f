"""Coupled time-stepping driver.

Per accepted step, strictly in this order:

    compute_next_step_size -> set_desired_next_step_size -> update_coefficients
    -> heat equation (previous velocity) -> diffusion -> projection
    -> pressure correction -> rotate all histories -> advance_time
    -> (periodic) postprocess

Stage failures come back as StageReports; the driver logs the diagnostic and
raises the stage's error, which ends the run.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import mlflow
import numpy as np

from .datastructures import Metrics, TimeSeries
from .exceptions import ProjectionSolverError
from .parallel import SerialCommunicator

log = logging.getLogger(__name__)

TIME_STEP = "time step"


@dataclass
class SimulationSession:
    """Run-wide state shared by reference: communicator, output counters, histories."""

    communicator: SerialCommunicator = field(default_factory=SerialCommunicator)
    output_directory: Optional[Path] = None
    n_terminal_outputs: int = 0
    time_series: TimeSeries = field(default_factory=TimeSeries)
    metrics: Metrics = field(default_factory=Metrics)


class CoupledDriver:
    """Runs the VSIMEX projection chain from start to end time.

    Parameters
    ----------
    time_stepping : VSIMEXMethod
    navier_stokes : NavierStokesProjection, optional
    heat_equation : HeatEquation, optional
    step_size_controller : AdaptiveStepSizeController, optional
        Without one the step size set on ``time_stepping`` is kept.
    session : SimulationSession, optional
    terminal_output_frequency : int
        Log a status line every this many steps (and at the end).
    n_maximum_steps : int
        Stop after this many steps; 0 means run to the end time.
    """

    def __init__(
        self,
        time_stepping,
        navier_stokes=None,
        heat_equation=None,
        step_size_controller=None,
        session=None,
        terminal_output_frequency=10,
        n_maximum_steps=0,
    ):
        if navier_stokes is None and heat_equation is None:
            raise ValueError("CoupledDriver needs a Navier-Stokes or a heat equation solver")
        self.time_stepping = time_stepping
        self.navier_stokes = navier_stokes
        self.heat_equation = heat_equation
        self.step_size_controller = step_size_controller
        self.session = session or SimulationSession()
        self.terminal_output_frequency = terminal_output_frequency
        self.n_maximum_steps = n_maximum_steps

    def fields(self):
        entities = []
        if self.navier_stokes is not None:
            entities += [self.navier_stokes.velocity, self.navier_stokes.pressure]
        if self.heat_equation is not None:
            entities.append(self.heat_equation.temperature)
        return entities

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def _check(self, reports):
        for report in reports:
            metric = f"{report.stage.replace(' ', '_').replace('-', '_')}_iterations"
            if hasattr(self.session.metrics, metric):
                setattr(self.session.metrics, metric, getattr(self.session.metrics, metric) + report.iterations)
            if report.failed:
                log.error(
                    f"Aborting: {report.stage} failed at step {report.step_number} "
                    f"after {report.iterations} iterations (residual {report.residual:.3e})"
                )
                raise report.error

    def step(self):
        """Take one accepted step."""
        ts = self.time_stepping
        try:
            if self.step_size_controller is not None and self.navier_stokes is not None:
                step_size = self.step_size_controller.compute_next_step_size(self.navier_stokes.velocity)
                ts.set_desired_next_step_size(step_size)
            ts.update_coefficients()
        except ProjectionSolverError as exc:
            exc.at(ts.step_number, TIME_STEP)
            log.error(f"Aborting: {TIME_STEP} setup failed at step {ts.step_number}: {exc}")
            raise

        if self.heat_equation is not None:
            self._check([self.heat_equation.solve()])
        if self.navier_stokes is not None:
            self._check(self.navier_stokes.solve())

        for entity in self.fields():
            entity.update_solution_vectors()

        step_size = ts.next_step_size
        ts.advance_time()
        self.postprocess(step_size)

    def run(self):
        """Step until the end time (or the step cap); returns the session metrics."""
        ts = self.time_stepping
        start = time.time()
        log.info(f"Time stepping from t={ts.current_time} to t={ts.end_time}")

        if self.navier_stokes is not None and self.navier_stokes.params.solve_poisson_prestep:
            self._check([self.navier_stokes.poisson_prestep()])

        while not ts.is_at_end:
            if self.n_maximum_steps and ts.step_number >= self.n_maximum_steps:
                log.info(f"Reached the maximum number of steps ({self.n_maximum_steps})")
                break
            self.step()

        metrics = self.session.metrics
        metrics.n_steps = ts.step_number
        metrics.final_time = ts.current_time
        metrics.wall_time_seconds = time.time() - start
        self._terminal_output(force=True)
        self.save()
        return metrics

    # ------------------------------------------------------------------
    # Postprocessing
    # ------------------------------------------------------------------

    def postprocess(self, step_size):
        ts = self.time_stepping
        session = self.session
        values = dict(step=ts.step_number, time=ts.current_time, step_size=step_size)

        if self.navier_stokes is not None:
            ns = self.navier_stokes
            velocity = ns.velocity.old_solution
            values["velocity_l2_norm"] = float(np.sqrt(velocity @ (ns.velocity_mass_matrix @ velocity)))
            values["pressure_l2_norm"] = float(
                np.sqrt(ns.pressure.old_solution @ (ns.pressure_mass_matrix @ ns.pressure.old_solution))
            )
            if self.step_size_controller is not None:
                cfl = self.step_size_controller.compute_cfl_number(ns.velocity, step_size, velocity)
                values["cfl_number"] = cfl
                session.metrics.max_cfl_number = max(session.metrics.max_cfl_number, cfl)
        if self.heat_equation is not None:
            heat = self.heat_equation
            temperature = heat.temperature.old_solution
            values["temperature_l2_norm"] = float(np.sqrt(temperature @ (heat.mass_matrix @ temperature)))

        session.time_series.append(**values)
        if mlflow.active_run():
            mlflow.log_metrics({k: v for k, v in values.items() if k != "step"}, step=ts.step_number)
        self._terminal_output()

    def _terminal_output(self, force=False):
        ts = self.time_stepping
        if not force and ts.step_number % self.terminal_output_frequency != 0:
            return
        series = self.session.time_series
        if not len(series):
            return
        self.session.n_terminal_outputs += 1
        status = [f"step={ts.step_number}", f"t={ts.current_time:.6f}", f"dt={series.step_size[-1]:.3e}"]
        if series.cfl_number:
            status.append(f"CFL={series.cfl_number[-1]:.3f}")
        if series.velocity_l2_norm:
            status.append(f"|u|={series.velocity_l2_norm[-1]:.4e}")
        if series.temperature_l2_norm:
            status.append(f"|T|={series.temperature_l2_norm[-1]:.4e}")
        log.info(" ".join(status))

    def save(self):
        directory = self.session.output_directory
        if directory is None:
            return
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "time_series.csv"
        self.session.time_series.to_dataframe().to_csv(path, index=False)
        log.info(f"Time series written to {path}")
