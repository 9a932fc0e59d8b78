"""Factory classes for creating configured service instances."""

import logging
from typing import Any, Optional

import boto3
import requests

from .config import PipelineConfig
from .exceptions import ConfigurationError
from .exporters import S3UploadSink
from .gateway import GeminiEnhancementGateway
from .observability import MetricsCollector, StructuredLogger
from .protocols import HTTPSessionProtocol, LoggerProtocol, S3ClientProtocol
from .services import (
    BatchOptimizationOrchestrator,
    ImageCodecService,
    ImageOptimizationService,
)


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str, debug: bool = False) -> StructuredLogger:
        """Create a structured logger, at DEBUG level when requested."""
        return StructuredLogger(name, logging.DEBUG if debug else None)


class S3ClientFactory:
    """Factory for creating S3 client instances."""

    @staticmethod
    def create_s3_client(**kwargs: Any) -> S3ClientProtocol:
        """Create S3 client with optional configuration."""
        session = boto3.Session()
        return session.client("s3", **kwargs)  # type: ignore


class OptimizerPipelineFactory:
    """Factory for creating the complete optimization pipeline."""

    @staticmethod
    def create_engine(
        config: PipelineConfig, logger: Optional[LoggerProtocol] = None
    ) -> ImageOptimizationService:
        codec = ImageCodecService(max_image_pixels=config.max_image_pixels, logger=logger)
        return ImageOptimizationService(codec, logger=logger)

    @staticmethod
    def create_gateway(
        config: PipelineConfig,
        engine: ImageOptimizationService,
        session: Optional[HTTPSessionProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> Optional[GeminiEnhancementGateway]:
        """Create the AI gateway, or ``None`` when no API key is configured."""
        if not config.ai_enabled:
            return None
        return GeminiEnhancementGateway(
            api_key=config.api_key or "",
            engine=engine,
            session=session or requests.Session(),
            endpoint=config.ai_endpoint,
            model=config.ai_model,
            prompt=config.ai_prompt,
            timeout=(config.ai_connect_timeout, config.ai_read_timeout),
            logger=logger,
        )

    @staticmethod
    def create_orchestrator(
        config: Optional[PipelineConfig] = None,
        logger: Optional[LoggerProtocol] = None,
        http_session: Optional[HTTPSessionProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ) -> BatchOptimizationOrchestrator:
        """Create a fully configured orchestrator."""
        config = config or PipelineConfig()

        if logger is None:
            logger = LoggerFactory.create_logger("pipeline", debug=config.debug)

        engine = OptimizerPipelineFactory.create_engine(config, logger)
        gateway = OptimizerPipelineFactory.create_gateway(
            config, engine, session=http_session, logger=logger
        )

        return BatchOptimizationOrchestrator(
            engine=engine,
            gateway=gateway,
            logger=logger,
            metrics_collector=metrics_collector or MetricsCollector(),
            workers=config.workers,
            default_settings=config.default_settings(),
        )

    @staticmethod
    def create_upload_sink(
        config: PipelineConfig,
        s3_client: Optional[S3ClientProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> S3UploadSink:
        """Create the S3 upload sink for ``config.upload_bucket``."""
        if not config.upload_bucket:
            raise ConfigurationError("No upload bucket configured")
        return S3UploadSink(
            s3_client or S3ClientFactory.create_s3_client(),
            bucket=config.upload_bucket,
            prefix=config.upload_prefix,
            logger=logger,
        )
