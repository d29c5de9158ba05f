"""Lagrange (Qk) finite element assembly on structured rectangular meshes."""

from .dof_handler import DofHandler
from .lagrange_element import LagrangeElement
from .operators import (
    assemble_mass_matrix,
    assemble_stiffness_matrix,
    assemble_coupling_mass_matrix,
    assemble_gradient_matrix,
    assemble_divergence_matrix,
    assemble_advection_matrix,
    assemble_load_vector,
    assemble_vector_load_vector,
    lumped_mass,
    vector_operator,
)
from .boundary_values import apply_boundary_values
from .cache import CachedOperator

__all__ = [
    "DofHandler",
    "LagrangeElement",
    "assemble_mass_matrix",
    "assemble_stiffness_matrix",
    "assemble_coupling_mass_matrix",
    "assemble_gradient_matrix",
    "assemble_divergence_matrix",
    "assemble_advection_matrix",
    "assemble_load_vector",
    "assemble_vector_load_vector",
    "lumped_mass",
    "vector_operator",
    "apply_boundary_values",
    "CachedOperator",
]
