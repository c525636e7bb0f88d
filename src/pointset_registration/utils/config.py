"""
Configuration management for pointset-registration.

Provides a typed pydantic model and YAML loader with sensible defaults. The
optimizer defaults follow the classic Levenberg-Marquardt settings; the
example configuration in ``config/default.yaml`` mirrors the looser values
used for quick command line runs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, List, Any, Dict

from pydantic import BaseModel, Field, ValidationError, field_validator
import yaml


# -----------------------
# Typed config structures
# -----------------------


class OptimizerConfig(BaseModel):
    max_iterations: int = Field(default=2000, ge=0)
    gradient_tolerance: float = Field(
        default=1e-5,
        ge=0.0,
        description="Stop when the norm of the sum-of-squares gradient falls to this value",
    )
    value_tolerance: float = Field(
        default=1e-8,
        ge=0.0,
        description="Stop when the relative cost decrease of an accepted step falls to this value",
    )
    epsilon_function: float = Field(
        default=1e-10,
        gt=0.0,
        description="Step-norm floor; also sets the forward-difference step when gradients are numeric",
    )
    scales: Optional[List[float]] = Field(
        default=None,
        description="Per-parameter scales applied before the solve (None = all ones)",
    )
    use_cost_function_gradient: bool = Field(
        default=False,
        description="Use the cost function's analytic Jacobian instead of forward differences",
    )
    initial_damping: float = Field(default=1e-3, gt=0.0)
    damping_increase_factor: float = Field(default=10.0, gt=1.0)
    damping_decrease_factor: float = Field(default=10.0, gt=1.0)
    max_step_retries: int = Field(
        default=10,
        ge=1,
        description="Damped solves attempted per iteration before the iteration is counted as failed",
    )

    @field_validator("scales")
    @classmethod
    def _positive_scales(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        if v is not None and any(s <= 0 for s in v):
            raise ValueError("scales must be strictly positive")
        return v


class MetricConfig(BaseModel):
    nn_backend: Literal["brute", "kd_tree"] = Field(
        default="brute",
        description="'brute' full scan (lowest-id tie break) or scikit-learn KD-tree",
    )
    n_workers: Optional[int] = Field(
        default=1,
        description="Threads for the brute-force scan (None = auto-detect: cpu_count - 1)",
    )
    chunk_size: int = Field(default=1024, ge=1, description="Moving points per scan chunk")


class TransformConfig(BaseModel):
    type: Literal["translation", "rigid2d", "affine"] = Field(default="translation")
    dimension: int = Field(default=2, ge=1)
    center: Optional[List[float]] = Field(default=None, description="Rotation centre for rigid2d")
    initial_parameters: Optional[List[float]] = Field(
        default=None,
        description="Initial parameter vector (None = identity transform)",
    )


class RegistrationConfig(BaseModel):
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    metric: MetricConfig = Field(default_factory=MetricConfig)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class VisualizationConfig(BaseModel):
    sample_size: int = Field(default=5000, ge=1, description="Max points per set drawn in plots")


class AppConfig(BaseModel):
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    transform: TransformConfig = Field(default_factory=TransformConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    visualization: VisualizationConfig = Field(default_factory=VisualizationConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/pointset_registration/utils/config.py
    parents sequence:
      0 -> .../src/pointset_registration/utils
      1 -> .../src/pointset_registration
      2 -> .../src
      3 -> repo_root
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when the default file is missing.
            An explicit path that does not exist always raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing and path is None:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        # Re-raise with context to help users fix the YAML
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}") from e
