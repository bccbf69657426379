"""Pydantic parameter models for icp_core estimators and geometry."""

from __future__ import annotations

import os
from typing import Any, Dict, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from icp_core.common import constants

CONFIG_ROOT_KEY = "icp_core"


class RobustKernelParams(BaseModel):
    """Robust kernel selection for the linearized estimators."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    type: Literal["l2", "l1", "huber", "cauchy", "gm", "tukey"] = "l2"
    scaling_parameter: float = Field(constants.ROBUST_KERNEL_SCALE_DEFAULT, gt=0.0)


class EstimationParams(BaseModel):
    """Transformation estimator parameters."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    method: Literal["point_to_point", "point_to_plane", "colored_icp"] = "point_to_plane"
    lambda_geometric: float = Field(constants.LAMBDA_GEOMETRIC_DEFAULT, ge=0.0, le=1.0)
    kernel: RobustKernelParams = Field(default_factory=RobustKernelParams)
    ill_conditioned_rcond: float = Field(constants.ILL_CONDITIONED_RCOND_DEFAULT, gt=0.0)


class GeometryParams(BaseModel):
    """Where and in what precision geometry is created."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    device: str = constants.DEFAULT_DEVICE
    float_dtype: Literal["float32", "float64"] = constants.DEFAULT_FLOAT_DTYPE
    int_dtype: Literal["int32", "int64"] = constants.DEFAULT_INT_DTYPE


class ICPCoreParams(BaseModel):
    """Top-level config file layout."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    estimation: EstimationParams = Field(default_factory=EstimationParams)
    geometry: GeometryParams = Field(default_factory=GeometryParams)


def default_config_path() -> str:
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "config", "estimation.yaml")


def load_params(path: Optional[Union[str, os.PathLike]] = None) -> ICPCoreParams:
    """
    Load and validate a YAML config.

    The file may wrap its sections in a top-level ``icp_core:`` key. Missing
    sections take their defaults; unknown keys are rejected.
    """
    path = default_config_path() if path is None else path
    with open(path, "r", encoding="utf-8") as f:
        data: Dict[str, Any] = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"load_params: expected a mapping at the top of {path}, got {type(data).__name__}")
    if CONFIG_ROOT_KEY in data:
        data = data[CONFIG_ROOT_KEY] or {}
    return ICPCoreParams.model_validate(data)
