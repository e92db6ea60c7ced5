"""
Value store adapters, one per configuration source.

Each adapter answers a single question: "do you have a value for this key?"
It returns the parsed value or MISSING. Anything else (network errors,
access denied, throttling) is raised as SourceUnavailable and the resolver
moves on to the next source.

Key -> location conventions:
    Parameter Store:   /{namespace}/{environment}/{key with . -> /}
    Secrets Manager:   {namespace}-{key minus 'secrets.' with . -> -}
    S3 config file:    {environment}/{first segment}-config.json
    Environment:       KEY_UPPERCASED_WITH_UNDERSCORES
"""

import asyncio
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from core.config import ResolverSettings

from .values import MISSING, ConfigSource, encode_config_value, parse_config_value

logger = logging.getLogger(__name__)


class SourceUnavailable(Exception):
    """Raised when a configuration source cannot be queried."""

    def __init__(self, source: ConfigSource, key: str, reason: str):
        self.source = source
        self.key = key
        self.reason = reason
        super().__init__(f"{source.value} unavailable for {key}: {reason}")


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class ValueStore(ABC):
    """Base class for a configuration source."""

    source: ConfigSource

    @abstractmethod
    async def lookup(self, key: str) -> Any:
        """Return the parsed value for key, or MISSING."""

    def handles(self, key: str) -> bool:
        """Whether this store should be consulted for key at all."""
        return True


class RuntimeOverrideStore(ValueStore):
    """In-memory overrides set programmatically (highest precedence)."""

    source = ConfigSource.RUNTIME_OVERRIDE

    def __init__(self):
        self._values: dict[str, Any] = {}
        self._lock = threading.Lock()

    async def lookup(self, key: str) -> Any:
        with self._lock:
            return self._values.get(key, MISSING)

    def set(self, key: str, value: Any):
        with self._lock:
            self._values[key] = value

    def clear(self, key: str) -> bool:
        with self._lock:
            return self._values.pop(key, MISSING) is not MISSING

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._values

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._values)


class _AWSStore(ValueStore):
    """Shared lazy boto3 client handling."""

    service_name: str = ""

    def __init__(self, settings: ResolverSettings, client: Any = None):
        self.settings = settings
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(self.service_name, region_name=self.settings.region)
        return self._client

    async def _run(self, key: str, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except ClientError:
            raise
        except BotoCoreError as e:
            raise SourceUnavailable(self.source, key, f"{type(e).__name__}: {e}") from e


class ParameterStoreSource(_AWSStore):
    """AWS SSM Parameter Store (SecureString values are decrypted)."""

    source = ConfigSource.PARAMETER_STORE
    service_name = "ssm"

    def build_parameter_path(self, key: str) -> str:
        return f"/{self.settings.app_namespace}/{self.settings.environment}/{key.replace('.', '/')}"

    async def lookup(self, key: str) -> Any:
        name = self.build_parameter_path(key)
        try:
            response = await self._run(
                key, self.client.get_parameter, Name=name, WithDecryption=True
            )
        except ClientError as e:
            if _error_code(e) == "ParameterNotFound":
                return MISSING
            raise SourceUnavailable(self.source, key, _error_code(e) or str(e)) from e

        return parse_config_value(response["Parameter"]["Value"])

    async def fetch_path(self, prefix: str) -> dict[str, Any]:
        """Load every parameter below a key prefix, keyed by suffix."""
        path = self.build_parameter_path(prefix)

        def _collect() -> list[dict]:
            paginator = self.client.get_paginator("get_parameters_by_path")
            parameters = []
            for page in paginator.paginate(Path=path, Recursive=True, WithDecryption=True):
                parameters.extend(page.get("Parameters", []))
            return parameters

        try:
            parameters = await self._run(prefix, _collect)
        except ClientError as e:
            raise SourceUnavailable(self.source, prefix, _error_code(e) or str(e)) from e

        values = {}
        for parameter in parameters:
            suffix = parameter["Name"].replace(path, "", 1).lstrip("/")
            values[suffix] = parse_config_value(parameter["Value"])
        return values

    async def put(self, key: str, value: Any):
        """Persist a value as a SecureString parameter."""
        name = self.build_parameter_path(key)
        try:
            await self._run(
                key,
                self.client.put_parameter,
                Name=name,
                Value=encode_config_value(value),
                Type="SecureString",
                Overwrite=True,
            )
        except ClientError as e:
            raise SourceUnavailable(self.source, key, _error_code(e) or str(e)) from e
        logger.info(f"Persisted configuration to Parameter Store: {key}")


class SecretStoreSource(_AWSStore):
    """AWS Secrets Manager, consulted only for secret-looking keys."""

    source = ConfigSource.SECRET_STORE
    service_name = "secretsmanager"

    SECRET_MARKERS = ("api.key", "token", "password")

    def handles(self, key: str) -> bool:
        return key.startswith("secrets.") or any(marker in key for marker in self.SECRET_MARKERS)

    def build_secret_id(self, key: str) -> str:
        name = key[len("secrets."):] if key.startswith("secrets.") else key
        secret_name = f"{self.settings.app_namespace}-{name.replace('.', '-')}"
        if self.settings.aws_account_id:
            return (
                f"arn:aws:secretsmanager:{self.settings.region}:"
                f"{self.settings.aws_account_id}:secret:{secret_name}"
            )
        return secret_name

    @staticmethod
    def extract_secret_field(key: str) -> Optional[str]:
        # 'secrets.youtube.api.key' -> 'key'
        parts = key.split(".")
        return parts[-1] if len(parts) > 3 else None

    async def lookup(self, key: str) -> Any:
        secret_id = self.build_secret_id(key)
        try:
            response = await self._run(key, self.client.get_secret_value, SecretId=secret_id)
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                return MISSING
            raise SourceUnavailable(self.source, key, _error_code(e) or str(e)) from e

        secret = parse_config_value(response.get("SecretString", ""))
        field_name = self.extract_secret_field(key)
        if field_name is None:
            return secret
        if isinstance(secret, dict):
            return secret.get(field_name, MISSING)
        return MISSING


class ObjectStorageFileSource(_AWSStore):
    """Nested JSON config files in S3, one file per top-level namespace."""

    source = ConfigSource.OBJECT_STORAGE_FILE
    service_name = "s3"

    def get_config_file_name(self, key: str) -> str:
        namespace = key.split(".")[0]
        return f"{self.settings.environment}/{namespace}-config.json"

    @staticmethod
    def extract_nested_value(data: Any, path: list[str]) -> Any:
        current = data
        for part in path:
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            else:
                return MISSING
        return current

    async def lookup(self, key: str) -> Any:
        object_key = self.get_config_file_name(key)

        def _read() -> bytes:
            response = self.client.get_object(Bucket=self.settings.config_bucket, Key=object_key)
            return response["Body"].read()

        try:
            body = await self._run(key, _read)
        except ClientError as e:
            if _error_code(e) in ("NoSuchKey", "NoSuchBucket"):
                return MISSING
            raise SourceUnavailable(self.source, key, _error_code(e) or str(e)) from e

        try:
            data = json.loads(body)
        except ValueError as e:
            raise SourceUnavailable(self.source, key, f"invalid JSON in {object_key}") from e

        return self.extract_nested_value(data, key.split(".")[1:])


class EnvironmentSource(ValueStore):
    """Process environment variables."""

    source = ConfigSource.ENVIRONMENT_VARIABLE

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    @staticmethod
    def env_name(key: str) -> str:
        return key.upper().replace(".", "_")

    async def lookup(self, key: str) -> Any:
        value = self._environ.get(self.env_name(key))
        if value is None:
            return MISSING
        return parse_config_value(value)


def build_default_sources(settings: ResolverSettings) -> list[ValueStore]:
    """The full precedence chain below runtime overrides."""
    return [
        ParameterStoreSource(settings),
        SecretStoreSource(settings),
        ObjectStorageFileSource(settings),
        EnvironmentSource(),
    ]
