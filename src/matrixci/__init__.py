from .dsl import axis, branches, pipeline, schedule, sh, step, triggers, value, variant
from .model import Condition, Job, Pipeline, PipelineRun, Status, Step, always, not_, os_is, os_is_not, var_eq, var_ne
from .actions import ActionContext, ActionResult
from .controller import PipelineController, run_pipeline
from .errors import ConfigurationError, ErrorKind
from .trigger import Event, EventKind, TriggerGate

__all__ = [
    "axis", "branches", "pipeline", "schedule", "sh", "step", "triggers", "value", "variant",
    "Condition", "Job", "Pipeline", "PipelineRun", "Status", "Step",
    "always", "not_", "os_is", "os_is_not", "var_eq", "var_ne",
    "ActionContext", "ActionResult",
    "PipelineController", "run_pipeline",
    "ConfigurationError", "ErrorKind",
    "Event", "EventKind", "TriggerGate",
]
