"""Configuration management for the compliance scanner."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


@dataclass
class BedrockConfig:
    """AWS Bedrock configuration."""
    model_id: str = "amazon.nova-pro-v1:0"
    timeout: int = 120
    temperature: float = 0.2
    max_tokens: int = 4096


@dataclass
class ImageConfig:
    """Image normalization limits."""
    max_dimension: int = 1280
    quality: float = 0.8


@dataclass
class HistoryConfig:
    """Evidence store location and capacity."""
    path: str = "data/history"
    capacity: int = 20


@dataclass
class AnalysisConfig:
    """Analysis reply handling."""
    strict_validation: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = "logs/compliance_lens.log"


def _section(data: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    current: Any = data
    for key in keys:
        current = current.get(key) if isinstance(current, dict) else None
    return current if isinstance(current, dict) else {}


def _coerce(key: str, value: Any, cast: Callable[[Any], Any]) -> Any:
    try:
        return cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError.invalid_value(key, value, str(e))


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError("expected a boolean")


@dataclass
class Config:
    """Main configuration class."""
    aws_region: str = "us-east-1"
    bedrock: BedrockConfig = field(default_factory=BedrockConfig)
    image: ImageConfig = field(default_factory=ImageConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: str = "config.yaml") -> "Config":
        """
        Load configuration from file and environment variables.

        Environment variables override config file values:
        - AWS_REGION
        - BEDROCK_MODEL_ID
        - BEDROCK_TIMEOUT
        - IMAGE_MAX_DIMENSION
        - IMAGE_QUALITY
        - HISTORY_PATH
        - HISTORY_CAPACITY
        - LOG_LEVEL

        A missing config file yields the defaults.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            ConfigurationError: If the file is not valid YAML or a value is unusable
        """
        config_data: Dict[str, Any] = {}
        path = Path(config_path)
        if path.exists():
            try:
                with open(path, "r") as f:
                    config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError.invalid_value(config_path, "<file>", f"invalid YAML: {e}")
            if not isinstance(config_data, dict):
                raise ConfigurationError.invalid_value(config_path, "<file>", "top level must be a mapping")

        defaults = cls()
        aws = _section(config_data, "aws")
        bedrock = _section(config_data, "aws", "bedrock")
        image = _section(config_data, "image")
        history = _section(config_data, "history")
        analysis = _section(config_data, "analysis")
        logging_data = _section(config_data, "logging")

        # AWS configuration with environment overrides
        aws_region = os.getenv("AWS_REGION", aws.get("region", defaults.aws_region))

        bedrock_config = BedrockConfig(
            model_id=os.getenv("BEDROCK_MODEL_ID", bedrock.get("model_id", defaults.bedrock.model_id)),
            timeout=_coerce(
                "aws.bedrock.timeout",
                os.getenv("BEDROCK_TIMEOUT", bedrock.get("timeout", defaults.bedrock.timeout)),
                int
            ),
            temperature=_coerce(
                "aws.bedrock.temperature",
                bedrock.get("temperature", defaults.bedrock.temperature),
                float
            ),
            max_tokens=_coerce(
                "aws.bedrock.max_tokens",
                bedrock.get("max_tokens", defaults.bedrock.max_tokens),
                int
            )
        )

        image_config = ImageConfig(
            max_dimension=_coerce(
                "image.max_dimension",
                os.getenv("IMAGE_MAX_DIMENSION", image.get("max_dimension", defaults.image.max_dimension)),
                int
            ),
            quality=_coerce(
                "image.quality",
                os.getenv("IMAGE_QUALITY", image.get("quality", defaults.image.quality)),
                float
            )
        )

        history_config = HistoryConfig(
            path=os.getenv("HISTORY_PATH", history.get("path", defaults.history.path)),
            capacity=_coerce(
                "history.capacity",
                os.getenv("HISTORY_CAPACITY", history.get("capacity", defaults.history.capacity)),
                int
            )
        )

        analysis_config = AnalysisConfig(
            strict_validation=_coerce(
                "analysis.strict_validation",
                analysis.get("strict_validation", defaults.analysis.strict_validation),
                _as_bool
            )
        )

        logging_config = LoggingConfig(
            level=os.getenv("LOG_LEVEL", logging_data.get("level", defaults.logging.level)),
            format=logging_data.get("format", defaults.logging.format),
            file=logging_data.get("file", defaults.logging.file)
        )

        config = cls(
            aws_region=aws_region,
            bedrock=bedrock_config,
            image=image_config,
            history=history_config,
            analysis=analysis_config,
            logging=logging_config,
        )
        config.validate()
        return config

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigurationError: On the first out-of-range value
        """
        if self.bedrock.timeout <= 0:
            raise ConfigurationError.invalid_value("aws.bedrock.timeout", self.bedrock.timeout, "must be positive")
        if not 0.0 <= self.bedrock.temperature <= 1.0:
            raise ConfigurationError.invalid_value(
                "aws.bedrock.temperature", self.bedrock.temperature, "must be within [0, 1]"
            )
        if self.bedrock.max_tokens <= 0:
            raise ConfigurationError.invalid_value(
                "aws.bedrock.max_tokens", self.bedrock.max_tokens, "must be positive"
            )
        if self.image.max_dimension <= 0:
            raise ConfigurationError.invalid_value(
                "image.max_dimension", self.image.max_dimension, "must be positive"
            )
        if not 0.0 < self.image.quality <= 1.0:
            raise ConfigurationError.invalid_value("image.quality", self.image.quality, "must be within (0, 1]")
        if self.history.capacity <= 0:
            raise ConfigurationError.invalid_value("history.capacity", self.history.capacity, "must be positive")
