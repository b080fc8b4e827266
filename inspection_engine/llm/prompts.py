"""
Vision assessment prompt

The rubric is fixed; only the VIN and image count vary per call.
"""

ASSESSMENT_PROMPT_VERSION = "damage-rubric-v1"


SEVERITY_RUBRIC = """
Severity rubric:
- low: minor cosmetic damage, no structural impact
- medium: noticeable damage that needs professional repair
- high: damage affecting appearance or function, including structural issues
"""


ASSESSMENT_PROMPT_TEMPLATE = """
You are an expert vehicle damage assessor.
Analyze the {image_count} attached image(s) of the vehicle with VIN {vin}.
Images are given in order; refer to them by zero-based imageIndex.
{rubric}
Respond with JSON ONLY, no prose, using exactly this structure:
{{
  "damages": [
    {{
      "type": "dent | scratch | paint damage | crack | glass | ...",
      "location": "where on the vehicle, e.g. front bumper",
      "severity": "low | medium | high",
      "description": "one sentence describing the damage",
      "estimatedCost": 0,
      "confidence": 0.0,
      "imageIndex": 0,
      "boundingBox": {{"x": 0.0, "y": 0.0, "width": 0.0, "height": 0.0}}
    }}
  ],
  "overallCondition": "excellent | good | fair | poor",
  "recommendations": ["..."],
  "totalEstimatedCost": 0,
  "confidence": 0.0
}}

Rules:
- severity MUST be one of low, medium, high
- costs are repair estimates in USD and MUST be non-negative numbers
- confidence values are between 0 and 1
- boundingBox values are fractions of the image width/height
- if no damage is visible return an empty damages array
"""


def build_assessment_prompt(vin: str, image_count: int) -> str:
    return ASSESSMENT_PROMPT_TEMPLATE.format(
        vin=vin,
        image_count=image_count,
        rubric=SEVERITY_RUBRIC,
    ).strip()
