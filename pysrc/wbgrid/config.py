"""Parameter loading from JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

from .utils import dict_to_namespace


def load_params(params_json_path: str | Path | None = None) -> SimpleNamespace:
    """
    Load water balance parameters from a JSON file.

    Args:
        params_json_path: Path to the parameters JSON file.
            If None (default), loads the bundled default_params.json
            (lapse rates, PET method, heat-load slope cutoff, snow, storage).

    Returns:
        SimpleNamespace object with nested parameter values accessible via attributes.

    Examples:
        >>> params = load_params()
        >>> params.Lapse_rate.Value.north_slope
        -0.0054
        >>> params.PET.Value.method
        'hamon'
    """
    if params_json_path is None:
        params_path = Path(__file__).parent / "data" / "default_params.json"
    else:
        params_path = Path(params_json_path)

    if not params_path.exists():
        raise FileNotFoundError(f"Parameters file not found: {params_path}")

    with open(params_path) as f:
        params_dict = json.load(f)

    return dict_to_namespace(params_dict)
