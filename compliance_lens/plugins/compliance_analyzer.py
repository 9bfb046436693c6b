"""Compliance analysis plugin for Semantic Kernel using AWS Bedrock vision models."""

import json
import logging
import time
from typing import Dict, Any, Union

from semantic_kernel.functions import kernel_function

from ..models.analysis import AnalysisResult, validate_analysis_result
from ..models.image import AnalysisRequest, NormalizedImage
from ..utils.bedrock_client import BedrockClient
from ..utils.errors import AnalysisError, ComplianceLensError
from .prompts import SYSTEM_PROMPT, USER_PROMPT

logger = logging.getLogger(__name__)

# Image formats accepted by the Converse API image block.
_BEDROCK_IMAGE_FORMATS = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


def strip_code_fences(text: str) -> str:
    """
    Remove markdown code fences surrounding a model reply.

    Args:
        text: Raw reply text

    Returns:
        Reply with leading ```json / ``` and trailing ``` removed
    """
    cleaned = text.strip()

    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        if first_newline == -1:
            cleaned = cleaned[3:]
            if cleaned.lower().startswith("json"):
                cleaned = cleaned[4:]
        else:
            cleaned = cleaned[first_newline + 1:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    return cleaned.strip()


def decode_analysis_response(text: str) -> Dict[str, Any]:
    """
    Decode a model reply into the raw AnalysisResult mapping.

    Only structural checks are made here: the reply must be a JSON object
    with a summary and a list of violations.

    Args:
        text: Raw reply text

    Returns:
        Parsed JSON object

    Raises:
        AnalysisError: RESPONSE_INVALID when the reply cannot be used
    """
    if not text or not text.strip():
        raise AnalysisError.invalid_response("empty response from model", raw_text=text or "")

    cleaned = strip_code_fences(text)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON response: {cleaned[:200]}...")
        raise AnalysisError.invalid_response(f"not valid JSON ({e})", raw_text=text)

    if not isinstance(data, dict):
        raise AnalysisError.invalid_response("top-level value is not an object", raw_text=text)
    if not data.get("summary"):
        raise AnalysisError.invalid_response("missing summary", raw_text=text)
    if not isinstance(data.get("violations"), list):
        raise AnalysisError.invalid_response("violations is not a list", raw_text=text)

    return data


class ComplianceAnalyzerPlugin:
    """
    Semantic Kernel plugin for code-compliance analysis of site photos.

    Sends the normalized image together with a fixed behaviour contract and
    output schema, then decodes and validates the model's JSON reply.
    """

    def __init__(
        self,
        bedrock_client: BedrockClient,
        strict_validation: bool = True,
        temperature: float = 0.2,
        max_tokens: int = 4096
    ):
        """
        Initialize compliance analyzer plugin.

        Args:
            bedrock_client: Configured BedrockClient instance
            strict_validation: Reject replies whose findings fail semantic checks
            temperature: Sampling temperature for the model
            max_tokens: Maximum tokens to generate
        """
        self.bedrock = bedrock_client
        self.strict_validation = strict_validation
        self.temperature = temperature
        self.max_tokens = max_tokens
        logger.info(f"Initialized ComplianceAnalyzerPlugin (strict_validation={strict_validation})")

    def build_request(self, image: Union[NormalizedImage, str]) -> AnalysisRequest:
        """
        Pair the image with the fixed instructions.

        Args:
            image: NormalizedImage or its data-URL form

        Returns:
            AnalysisRequest carrying both instruction blocks
        """
        if isinstance(image, str):
            image = NormalizedImage.from_data_url(image)
        return AnalysisRequest(image=image, system_prompt=SYSTEM_PROMPT, user_prompt=USER_PROMPT)

    def _build_messages(self, request: AnalysisRequest) -> list:
        image_format = _BEDROCK_IMAGE_FORMATS.get(request.image.mime_type.lower(), "jpeg")
        # boto3's converse API takes raw bytes, not base64 text
        return [
            {
                "role": "user",
                "content": [
                    {
                        "image": {
                            "format": image_format,
                            "source": {"bytes": request.image.data}
                        }
                    },
                    {"text": request.user_prompt}
                ]
            }
        ]

    async def analyze(self, image: Union[NormalizedImage, str]) -> AnalysisResult:
        """
        Analyze a site photo for code-compliance violations.

        Args:
            image: NormalizedImage or its data-URL form

        Returns:
            Validated AnalysisResult

        Raises:
            AnalysisError: Classified failure (configuration, quota, credential,
                model, invalid response, or generic)
        """
        start_time = time.time()

        if not self.bedrock.has_credentials():
            logger.error("No AI credentials configured; refusing to call the model")
            raise AnalysisError.configuration_missing()

        try:
            request = self.build_request(image)
        except ValueError as e:
            raise AnalysisError.invalid_response(f"unusable image payload ({e})")

        logger.info(
            f"Starting compliance analysis: {request.image.size_bytes} bytes, "
            f"{request.image.width}x{request.image.height} {request.image.mime_type}"
        )

        try:
            response = await self.bedrock.converse(
                messages=self._build_messages(request),
                system_prompts=[{"text": request.system_prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except ComplianceLensError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error calling the model: {e}")
            raise AnalysisError.from_provider_error(e)

        api_time = time.time() - start_time
        response_text = response.get("text", "")
        logger.debug(f"Model response length: {len(response_text)} characters")

        data = decode_analysis_response(response_text)
        result = AnalysisResult.from_dict(data)

        issues = validate_analysis_result(result)
        if issues:
            if self.strict_validation:
                logger.warning(f"Rejecting analysis with {len(issues)} issue(s): {issues}")
                raise AnalysisError.invalid_response(
                    f"{len(issues)} finding(s) failed validation",
                    raw_text=response_text,
                    issues=issues
                )
            logger.warning(f"Accepting analysis with {len(issues)} validation issue(s): {issues}")

        logger.info(
            f"Compliance analysis complete: {len(result.violations)} violation(s), "
            f"{len(result.what_to_look_for)} checklist item(s) in {api_time:.3f}s"
        )
        return result

    @kernel_function(
        name="analyze_compliance_image",
        description=(
            "Analyze a site photo for fire, life-safety, electrical and accessibility "
            "code violations. Returns violations with pixel bounding boxes, remediation "
            "guidance and an on-site verification checklist."
        )
    )
    async def analyze_image(self, image_data_url: str) -> Dict[str, Any]:
        """
        Kernel-facing wrapper returning the wire-format dictionary.

        Args:
            image_data_url: Image as a data URL (or bare base64 JPEG)

        Returns:
            AnalysisResult in its camelCase dictionary form

        Raises:
            AnalysisError: Classified failure
        """
        result = await self.analyze(image_data_url)
        return result.to_dict()
