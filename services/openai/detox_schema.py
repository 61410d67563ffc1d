"""Tool schemas for the diagnosis and treatment calls."""

from typing import Any, Dict

DIAGNOSIS_FUNCTION_NAME = "report_ghibli_diagnosis"
TREATMENT_FUNCTION_NAME = "prescribe_ghibli_treatment"

_POINTS = {"type": "array", "items": {"type": "string"}}

DIAGNOSIS_FUNCTION: Dict[str, Any] = {
    "type": "function",
    "name": DIAGNOSIS_FUNCTION_NAME,
    "description": (
        "Return the diagnosis points, treatment points, scene description and contamination level."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "diagnosis_points": {**_POINTS, "description": "Three humorous diagnosis points."},
            "treatment_points": {**_POINTS, "description": "Three humorous treatment points."},
            "description": {
                "type": "string",
                "description": "A pixel-perfect description of the scene, detailed enough to recreate it.",
            },
            "contamination_level": {
                "type": "integer",
                "description": "Ghibli contamination from 1 to 100.",
            },
        },
        "required": ["diagnosis_points", "treatment_points", "description", "contamination_level"],
        "additionalProperties": False,
    },
    "strict": True,
}

TREATMENT_FUNCTION: Dict[str, Any] = {
    "type": "function",
    "name": TREATMENT_FUNCTION_NAME,
    "description": "Return the treatment plan for a diagnosed image.",
    "parameters": {
        "type": "object",
        "properties": {
            "treatment_points": {**_POINTS, "description": "Three humorous treatment points."},
        },
        "required": ["treatment_points"],
        "additionalProperties": False,
    },
    "strict": True,
}
