"""Abstract base problem: mesh, time stepping, entities and solvers from ProblemParameters."""

import logging
from abc import ABC, abstractmethod

from omegaconf import DictConfig

from ..adaptive_step import AdaptiveStepSizeController
from ..datastructures import ProblemParameters
from ..driver import CoupledDriver, SimulationSession
from ..meshing import RectangularMesh
from ..time_discretization import VSIMEXMethod

log = logging.getLogger(__name__)


class Problem(ABC):
    """Abstract base for the simulation set-ups.

    Handles:
    - Parameter management (input configuration, C1..C6 from the problem type)
    - Mesh, time controller and session creation
    - Running the coupled driver

    Subclasses must:
    - Implement build() - create entities, boundary conditions and solvers
      (set ``self.navier_stokes`` and/or ``self.heat_equation``)
    - Implement set_initial_conditions()
    """

    def __init__(self, params=None, name=None, **kwargs):
        """Initialize problem with parameters.

        Parameters
        ----------
        name : str, optional
            Label for logs and run names; defaults to the class name.
        params : ProblemParameters or dict, optional
            Parameters object or a (Hydra) mapping of its fields. If not
            provided, kwargs are used.
        **kwargs
            ProblemParameters fields used when params is None.
        """
        if params is None:
            params = ProblemParameters.from_config(kwargs)
        elif isinstance(params, (dict, DictConfig)):
            params = ProblemParameters.from_config(params)

        self.name = name or type(self).__name__
        self.params = params.apply_dimensionless_numbers()
        self.session = SimulationSession(output_directory=params.output_directory)
        self.mesh = RectangularMesh(params.nx, params.ny, params.Lx, params.Ly)
        self.time_stepping = VSIMEXMethod.from_parameters(params.time_discretization)
        self.step_size_controller = AdaptiveStepSizeController(
            params.time_discretization, self.mesh, self.time_stepping, self.session.communicator
        )
        self.navier_stokes = None
        self.heat_equation = None
        self.build()

    @abstractmethod
    def build(self):
        pass

    @abstractmethod
    def set_initial_conditions(self):
        pass

    def make_driver(self):
        return CoupledDriver(
            self.time_stepping,
            navier_stokes=self.navier_stokes,
            heat_equation=self.heat_equation,
            step_size_controller=self.step_size_controller,
            session=self.session,
            terminal_output_frequency=self.params.terminal_output_frequency,
            n_maximum_steps=self.params.time_discretization.n_maximum_steps,
        )

    def run(self):
        """Set initial conditions and step to the end time; returns the run metrics."""
        log.info(f"{self.name}: {self.params.problem_type}, mesh {self.mesh}")
        self.set_initial_conditions()
        return self.make_driver().run()
