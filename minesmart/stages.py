"""
Stage inference — pure functions with no side effects.

A lot's stage is never stored. It is derived from which collections hold
documents for the lot, walking the process forward one gate at a time.
"""

from .config import STAGE_IDS, STATUS_MESSAGES
from .schemas import LotAggregate


def _empty_flags() -> dict[str, bool]:
    return {stage: False for stage in STAGE_IDS}


def infer_stage(aggregate: LotAggregate | None) -> dict:
    """Return the stage flags, current stage, and status message for a lot.

    Logic
    -----
    - no extraction record          -> pending, all flags false
    - extraction                    -> extraction
    - + lab records                 -> lab
    - + plant records               -> plant flag set, shown as "shipping"
                                       (ready to dispatch)
        - any plant run sold        -> sold; shipping records are not
                                       checked (direct sale from plant)
        - else shipping records     -> shipping
            - any shipping sold     -> sold
        - else                      -> plant

    Each step only runs when the previous one passed, so a later flag is
    never true while an earlier one is false.

    Returns
    -------
    {
        "stages": {"extraction": bool, "lab": bool, "plant": bool,
                   "shipping": bool, "sold": bool},
        "current_stage": "pending" | "extraction" | "lab" | "plant"
                         | "shipping" | "sold",
        "status_message": str,
    }
    """
    stages = _empty_flags()
    result = {
        "stages": stages,
        "current_stage": "pending",
        "status_message": STATUS_MESSAGES["not_found"],
    }

    if aggregate is None or aggregate.extraction is None:
        return result

    stages["extraction"] = True
    result["current_stage"] = "extraction"
    result["status_message"] = STATUS_MESSAGES["extraction"]

    if not aggregate.lab:
        return result

    stages["lab"] = True
    result["current_stage"] = "lab"
    result["status_message"] = STATUS_MESSAGES["lab"]

    if not aggregate.plant:
        return result

    stages["plant"] = True
    result["current_stage"] = "shipping"
    result["status_message"] = STATUS_MESSAGES["plant_ready"]

    if any(run.vendido for run in aggregate.plant):
        stages["sold"] = True
        result["current_stage"] = "sold"
        result["status_message"] = STATUS_MESSAGES["sold"]
        return result

    if not aggregate.shipping:
        result["current_stage"] = "plant"
        result["status_message"] = STATUS_MESSAGES["plant_waiting"]
        return result

    stages["shipping"] = True
    result["current_stage"] = "shipping"
    result["status_message"] = STATUS_MESSAGES["shipping"]

    if any(record.vendido for record in aggregate.shipping):
        stages["sold"] = True
        result["current_stage"] = "sold"
        result["status_message"] = STATUS_MESSAGES["sold"]

    return result


def stage_index(stage: str) -> int:
    """Position of a stage in the process, -1 for pending or unknown."""
    try:
        return STAGE_IDS.index(stage)
    except ValueError:
        return -1
