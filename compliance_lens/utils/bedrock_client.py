"""AWS Bedrock client wrapper for single-shot vision analysis calls."""

import asyncio
import logging
import os
from typing import Dict, List, Optional, Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from dotenv import load_dotenv

from .errors import AnalysisError

# Ensure environment variables are loaded
load_dotenv()

logger = logging.getLogger(__name__)


class BedrockClient:
    """
    Wrapper for the AWS Bedrock Runtime Converse API.

    Each invocation is a single attempt: failures are wrapped into a
    classified AnalysisError and surfaced to the caller, never retried here.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        model_id: str = "amazon.nova-pro-v1:0",
        timeout: int = 120,
        runtime: Optional[Any] = None
    ):
        """
        Initialize Bedrock client.

        Args:
            region: AWS region for Bedrock service
            model_id: Vision-capable model identifier
            timeout: Connect/read timeout in seconds for one call
            runtime: Optional pre-built bedrock-runtime client (used by tests)
        """
        self.region = region
        self.model_id = model_id
        self.timeout = timeout

        self._bearer_token = self._resolve_bearer_token()
        self._using_bearer_token = bool(self._bearer_token)
        if self._using_bearer_token and not os.getenv("AWS_BEARER_TOKEN_BEDROCK"):
            os.environ["AWS_BEARER_TOKEN_BEDROCK"] = self._bearer_token

        if runtime is not None:
            self.runtime = runtime
        else:
            config_kwargs: Dict[str, Any] = {
                "region_name": region,
                "connect_timeout": timeout,
                "read_timeout": timeout,
                "retries": {"max_attempts": 0},
            }
            if self._using_bearer_token:
                config_kwargs["signature_version"] = "bearer"
            self.runtime = boto3.client("bedrock-runtime", config=Config(**config_kwargs))

        logger.info(
            f"Initialized BedrockClient: region={region}, model={model_id}, "
            f"timeout={timeout}s, auth={'api-key' if self._using_bearer_token else 'iam'}"
        )

    @staticmethod
    def _resolve_bearer_token() -> Optional[str]:
        """Return a Bedrock API key from AWS_BEARER_TOKEN_BEDROCK or BEDROCK_API_KEY."""
        token = os.getenv("AWS_BEARER_TOKEN_BEDROCK") or os.getenv("BEDROCK_API_KEY")
        return token.strip() if token and token.strip() else None

    def has_credentials(self) -> bool:
        """
        Check that some local credential is available before calling out.

        Returns:
            True if an API key or a boto3 credential chain entry is present
        """
        if self._using_bearer_token:
            return True
        try:
            return boto3.session.Session().get_credentials() is not None
        except BotoCoreError as e:
            logger.warning(f"Failed to resolve AWS credentials: {e}")
            return False

    async def converse(
        self,
        messages: List[Dict[str, Any]],
        system_prompts: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096
    ) -> Dict[str, Any]:
        """
        Invoke the configured model once via the Converse API.

        Args:
            messages: List of message dicts with 'role' and 'content'
            system_prompts: Optional system prompt blocks
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            Dict containing 'text', 'content', 'stop_reason', 'usage'

        Raises:
            AnalysisError: Classified failure of the remote call
        """
        params: Dict[str, Any] = {
            "modelId": self.model_id,
            "messages": messages,
            "inferenceConfig": {
                "temperature": temperature,
                "maxTokens": max_tokens
            }
        }
        if system_prompts:
            params["system"] = system_prompts

        logger.debug(f"Invoking {self.model_id} via Converse API")

        try:
            response = await asyncio.to_thread(self.runtime.converse, **params)
        except NoCredentialsError as e:
            logger.error(f"No AWS credentials available for Bedrock: {e}")
            raise AnalysisError.configuration_missing(str(e))
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            error_message = e.response.get("Error", {}).get("Message", str(e))
            logger.error(f"Bedrock API error: code={error_code}, message={error_message}")
            raise AnalysisError.from_provider_error(e, operation="converse")
        except BotoCoreError as e:
            logger.error(f"Bedrock transport error: {e}")
            raise AnalysisError.from_provider_error(e, operation="converse")

        logger.info(
            f"Bedrock invocation successful: "
            f"stop_reason={response.get('stopReason')}, "
            f"usage={response.get('usage')}"
        )
        return self._parse_converse_response(response)

    def _parse_converse_response(self, response: Dict[str, Any]) -> Dict[str, Any]:
        """
        Parse Converse API response into a simplified format.

        Args:
            response: Raw response from Converse API

        Returns:
            Parsed response dict with 'text', 'content', 'stop_reason', 'usage'
        """
        output = response.get("output", {})
        message = output.get("message", {})
        content = message.get("content", []) or []

        text_parts = [block["text"] for block in content if "text" in block]

        return {
            "content": content,
            "text": "\n".join(text_parts),
            "stop_reason": response.get("stopReason", "unknown"),
            "usage": response.get("usage", {}),
        }
