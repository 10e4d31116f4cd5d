"""MSAC robust fitting engine and geometric models."""

from .msac import (
    MSAC,
    MSACResult,
    ModelStrategy,
    RansacParams,
    RansacState,
    compute_loop_number,
    fit_robust,
)
from .models import (
    FundamentalMatrixModel,
    HomographyModel,
    Line2DModel,
    PlaneModel,
    SphereModel,
)

__all__ = [
    'MSAC',
    'MSACResult',
    'ModelStrategy',
    'RansacParams',
    'RansacState',
    'compute_loop_number',
    'fit_robust',
    'FundamentalMatrixModel',
    'HomographyModel',
    'Line2DModel',
    'PlaneModel',
    'SphereModel',
]
