# workflow.py
from __future__ import annotations

import runpy
from pathlib import Path

from .errors import ConfigurationError
from .model import Pipeline

DEFAULT_WORKFLOW = "matrixci_workflow.py"


def load_workflow(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a python file path.

    The file must define either:
      - workflow() -> Pipeline
      - PIPELINE = Pipeline(...)
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise ConfigurationError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ConfigurationError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"matrixci_workflow_{wf_path.stem}"
    try:
        globals_dict = runpy.run_path(str(wf_path), run_name=module_name)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Workflow {wf_path.name} failed to load: {e}") from e

    result = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        result = globals_dict["workflow"]()
    elif "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]

    if not isinstance(result, Pipeline):
        raise ConfigurationError(
            "Workflow must return/define a Pipeline. "
            "Define workflow() -> Pipeline or PIPELINE = pipeline(...)."
        )
    return result


def find_workflow_files(directory: str | Path = ".") -> list[Path]:
    """matrixci_workflow.py first, then any other *_workflow.py."""
    current_dir = Path(directory)
    default = current_dir / DEFAULT_WORKFLOW
    found = [default] if default.exists() else []
    found.extend(p for p in sorted(current_dir.glob("*_workflow.py")) if p != default)
    return found
