"""
Layered settings resolution.

Provider sections ("aws", "oci") take precedence over the legacy flat keys
at the top level of the document, which in turn take precedence over the
caller's default.
"""

import json
import os
from typing import Dict, Any, Optional, Mapping

from .errors import ConfigurationMissing
from .models import Provider, BucketTarget


AWS_NAMESPACE = "AWS/S3"

OCI_DEFAULT_CLASS = "StandardStorage"
OCI_METRICS_ENDPOINT_TEMPLATE = "https://telemetry.{region}.oraclecloud.com"
OCI_NAMESPACE_TEMPLATE = "oci_objectstorage/{namespace}"
OCI_LISTING_ENDPOINT_TEMPLATE = "https://{namespace}.compat.objectstorage.{region}.oraclecloud.com"

LEGACY_KEYS = ('region', 'key', 'secret', 'bucket', 'class')

# Environment variables feeding the legacy flat layer
ENV_PREFIX = "S3_METRICS_"


class Settings:
    """Read-only view over a settings document."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        self.data: Dict[str, Any] = dict(data or {})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Settings":
        return cls(data)

    @classmethod
    def from_file(cls, path: str) -> "Settings":
        with open(path, 'r') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ConfigurationMissing(f"Settings file {path} must contain a JSON object")
        return cls(data)

    @classmethod
    def load(cls, path: Optional[str] = None,
             environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Load from an optional file, then let environment variables fill the flat layer."""
        settings = cls.from_file(path) if path else cls()
        settings.apply_environment(os.environ if environ is None else environ)
        return settings

    def apply_environment(self, environ: Mapping[str, str]):
        provider = environ.get(ENV_PREFIX + 'PROVIDER')
        if provider:
            self.data['provider'] = provider
        for key in LEGACY_KEYS:
            value = environ.get(ENV_PREFIX + key.upper())
            if value:
                self.data[key] = value

    def section(self, name: str) -> Dict[str, Any]:
        value = self.data.get(name)
        return value if isinstance(value, dict) else {}

    def resolve(self, section: str, key: str, default: Any = None) -> Any:
        """section[key], else legacy[key], else default."""
        value = self.section(section).get(key)
        if value is not None:
            return value
        value = self.data.get(key)
        if value is not None:
            return value
        return default

    @property
    def provider(self) -> Provider:
        return Provider.parse(self.data.get('provider', Provider.AWS.value))

    def resolve_target(self, provider: Optional[Provider] = None) -> BucketTarget:
        provider = provider or self.provider
        if provider is Provider.OCI:
            return self._oci_target()
        return self._aws_target()

    def _aws_target(self) -> BucketTarget:
        bucket = self.resolve('aws', 'bucket')
        storage_class = self.resolve('aws', 'class')

        if not bucket or not storage_class:
            raise ConfigurationMissing(
                "AWS bucket and storage class must be configured",
                provider=Provider.AWS.value, bucket=bucket
            )

        return BucketTarget(
            provider=Provider.AWS,
            bucket=bucket,
            storage_class=storage_class,
            namespace=AWS_NAMESPACE,
            region=self.resolve('aws', 'region'),
            key=self.resolve('aws', 'key'),
            secret=self.resolve('aws', 'secret'),
        )

    def _oci_target(self) -> BucketTarget:
        oci = self.section('oci')
        if not oci:
            raise ConfigurationMissing("OCI configuration not found", provider=Provider.OCI.value)

        bucket = oci.get('bucket')
        region = oci.get('region')
        namespace = oci.get('namespace')

        missing = [name for name, value in (('bucket', bucket), ('region', region),
                                            ('namespace', namespace)) if not value]
        if missing:
            raise ConfigurationMissing(
                f"OCI configuration incomplete, missing: {', '.join(missing)}",
                provider=Provider.OCI.value, bucket=bucket
            )

        endpoint_region = oci.get('endpoint_region') or region
        metrics_endpoint = oci.get('metrics_endpoint') or OCI_METRICS_ENDPOINT_TEMPLATE.format(
            region=endpoint_region
        )
        listing_endpoint = oci.get('endpoint') or OCI_LISTING_ENDPOINT_TEMPLATE.format(
            namespace=namespace, region=region
        )

        return BucketTarget(
            provider=Provider.OCI,
            bucket=bucket,
            storage_class=oci.get('class') or OCI_DEFAULT_CLASS,
            namespace=OCI_NAMESPACE_TEMPLATE.format(namespace=namespace),
            region=region,
            key=oci.get('key'),
            secret=oci.get('secret'),
            endpoint=metrics_endpoint,
            listing_endpoint=listing_endpoint,
            listing_fallback=bool(oci.get('listing_fallback', False)),
        )
