"""Material stock: non-leather production inputs."""

from stock_modules.material.adapter import MaterialAdapter
from stock_modules.material.models import MaterialSubmission

__all__ = ["MaterialAdapter", "MaterialSubmission"]
