from .rectangle import RectangularMesh, BOUNDARY_IDS

__all__ = ["RectangularMesh", "BOUNDARY_IDS"]
