"""Fixed instructions sent with every compliance analysis request."""

import json

from ..models.analysis import SCHEMA_VERSION, SEVERITIES


SYSTEM_PROMPT = """You are "Compliance Lens," a code compliance inspector specializing in NFPA, IBC, IFC, NEC, CMS, The Joint Commission, ADA, ANSI, and Georgia Title 25.
You analyze ONLY what is visually verifiable in the provided image. Do not invent unseen context.

Critical output rules:
- Output MUST be a single valid JSON object that conforms to the schema in the user message.
- Do not include prose, markdown, or code fences outside the JSON.
- If unsure, set "confidence" accordingly and prefer "unknown" over guessing.
- If nothing is clearly visible, return an empty violations array and still include "summary" and "whatToLookFor".
- Coordinates must be tight bounding boxes in the image's native pixel space.
- Apply the SPECIAL INSTRUCTIONS exactly as written when applicable."""


OUTPUT_SCHEMA = {
    "type": "object",
    "required": ["schemaVersion", "summary", "image", "violations", "whatToLookFor"],
    "properties": {
        "schemaVersion": {"type": "string", "enum": [SCHEMA_VERSION]},
        "summary": {
            "type": "object",
            "required": ["text", "confidence"],
            "properties": {
                "text": {"type": "string", "description": "One-sentence description of the scene."},
                "confidence": {"type": "number", "minimum": 0, "maximum": 1},
            },
        },
        "image": {
            "type": "object",
            "required": ["width", "height"],
            "properties": {
                "width": {"type": "integer", "minimum": 1},
                "height": {"type": "integer", "minimum": 1},
            },
        },
        "violations": {
            "type": "array",
            "items": {
                "type": "object",
                "required": [
                    "id", "title", "code", "severity", "description", "location",
                    "coordinates", "confidence", "remediation", "references",
                ],
                "properties": {
                    "id": {"type": "string"},
                    "title": {"type": "string"},
                    "code": {
                        "type": "string",
                        "description": "e.g., 'NFPA 10', 'NFPA 80', 'NFPA 72', 'NEC', 'ADA', 'ANSI'.",
                    },
                    "severity": {"type": "string", "enum": list(SEVERITIES)},
                    "description": {"type": "string"},
                    "location": {"type": "string"},
                    "coordinates": {
                        "type": "object",
                        "required": ["x1", "y1", "x2", "y2"],
                        "properties": {
                            "x1": {"type": "integer", "minimum": 0},
                            "y1": {"type": "integer", "minimum": 0},
                            "x2": {"type": "integer", "minimum": 0},
                            "y2": {"type": "integer", "minimum": 0},
                        },
                        "description": "Tight bbox in native pixels: top-left (x1,y1), bottom-right (x2,y2).",
                    },
                    "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                    "remediation": {"type": "string"},
                    "references": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Cite sections if known; keep short.",
                    },
                },
            },
        },
        "whatToLookFor": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["item", "details"],
                "properties": {
                    "item": {"type": "string"},
                    "details": {"type": "string"},
                },
            },
        },
    },
}


SPECIAL_INSTRUCTIONS = """SPECIAL INSTRUCTIONS FOR COMMON DEFICIENCIES (apply when visible):
- Unsecured Fire Extinguisher: If an extinguisher is not in a bracket or cabinet, add a High severity violation under NFPA 10. The description MUST mention Section 6.1.3.8.1 and why an unsecured extinguisher is hazardous.
- Improper Use of Extension Cords: If an extension cord passes through a wall, ceiling or floor penetration, add a High severity violation under NEC. Explain that flexible cords are not permanent wiring, cannot be routed through holes, and present a fire hazard.
- Damaged Devices: If a smoke detector or other fire-safety device appears damaged, describe the damage and the functional risk.
- Sprinkler Heads: Note corrosion, paint, heavy loading (dust or debris), or a spray pattern obstructed by fixed objects.
- Infection Control Risks: In a healthcare context, flag discarded bottles or unknown substances with a hygiene rationale.
- Fire Door Labels: If a fire door or frame label is visible, add an entry with code NFPA 80 and severity Low stating:
  "A fire rating label is visible. This indicates the component is part of a fire-rated assembly. It is not a deficiency, but its rating and appropriateness for the location must be verified against the facility's Life Safety plans. Minor scrapes on the label are not a deficiency."
  Also add related "whatToLookFor" checks for the full door assembly.
- Hazardous Room Doors: If a door indicates a hazardous area (e.g., biohazard or Soiled Utility) and the latch looks disengaged, add a High severity violation. Explain the containment risk; such doors must be self-closing and positively latching. Add "Room Pressure Verification" and "Self-Closing Mechanism" items to whatToLookFor.
- Fire Extinguisher Height: If an extinguisher is mounted, add a verification note: a top at up to 60 in is acceptable per NFPA 10, but ADA reach is often limited to 48 in to the handle. Add a "Measure height to handle" item.

MANDATORY "whatToLookFor" items for Fire Door Labels:
- Proper Gaps & Clearances
- Positive Latching Hardware
- Functioning Self-Closing Device
- Intact Seals (Smoke/Intumescent)
- No Unapproved Hardware or Modifications"""


def build_user_prompt() -> str:
    """
    Build the user prompt: schema contract plus the standing heuristics.

    Returns:
        Prompt text sent alongside the image on every call
    """
    schema_text = json.dumps(OUTPUT_SCHEMA, indent=2)
    return f"""Analyze the attached image. Ground your findings ONLY in what is visible.

Your response MUST be a single JSON object that conforms to this schema:

{schema_text}

{SPECIAL_INSTRUCTIONS}

If nothing is clearly noncompliant, set violations to [] but still provide 4-8 relevant "whatToLookFor" items based on context.

Return only the JSON object (no markdown)."""


USER_PROMPT = build_user_prompt()
