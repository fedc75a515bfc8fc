"""ECR client wrapper for image manifest and label lookups.

This module reads image metadata from AWS ECR: manifest and config digests,
the labels stored in an image's config layer, and repository tags. The
config layer is downloaded through the HTTP request executor from the
pre-signed URL ECR returns.

Tags can also be filtered by a version policy, a PEP 440 specifier set such
as `">=2.300, <3"`, to find the newest matching image.

## Usage

```python
from opsutils.clients.ecr import ECRImages
from opsutils.core.params import ObjParams

images = ECRImages(ObjParams.default())
version = images.get_runner_version_label("actions-runner", "2.319.1")
latest = images.get_latest_image("actions-runner", ">=2.300, <3")
```

## Error Handling

SDK failures (`ClientError`, `BotoCoreError`), download failures and
malformed JSON documents all raise `ImageLookupError`, chained from the
underlying exception.
"""

import json
from collections.abc import Callable
from typing import Any, TypeVar

import attrs
import boto3  # type: ignore[import-untyped]
from botocore.config import Config  # type: ignore[import-untyped]
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import-untyped]
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from opsutils.config import AWSConfig, HTTPClientConfig, Settings
from opsutils.core.exceptions import ExchangeError, ImageLookupError
from opsutils.core.params import ObjParams
from opsutils.foundation.http import Method, RequestExecutor
from opsutils.foundation.logger import TRACE, traced

from .mixins import ExecutorMixin, LoggerMixin

T = TypeVar("T")

ACCEPTED_MEDIA_TYPES: tuple[str, ...] = (
    "application/vnd.docker.distribution.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
)

RUNNER_VERSION_LABEL = "actions-runner-version"

DESCRIBE_IMAGES_PAGE_SIZE = 100

# Returned by get_latest_image when no tag satisfies the policy
NO_IMAGE_VERSION = "0.0.0"


@attrs.define(frozen=False, slots=True)
class ECRImages(ExecutorMixin, LoggerMixin):
    """Wrapper for the boto3 ECR client.

    Attributes:
        params: Object parameters (logger, output stream, cancellation).
        executor: Request executor used to download config layers; an
            HTTPExecutor is created when None.
        config: Region and SDK timeout. Defaults to the environment.
        client: boto3 ECR client; created from `config` when None.
        http_config: Settings for the default executor.
    """

    params: ObjParams = attrs.field(factory=ObjParams.default)
    executor: RequestExecutor | None = attrs.field(default=None)
    config: AWSConfig = attrs.field(factory=AWSConfig.from_env)
    client: Any = attrs.field(default=None)
    http_config: HTTPClientConfig | None = attrs.field(default=None)

    def __attrs_post_init__(self) -> None:
        """Create the boto3 client and executor when they were not injected."""
        if self.client is None:
            config = Config(
                connect_timeout=self.config.timeout,
                read_timeout=self.config.timeout,
                retries={"max_attempts": 3, "mode": "standard"},
            )
            self.client = boto3.client("ecr", region_name=self.config.region, config=config)
        self.executor = self._default_executor(self.executor, self.params, self.http_config)

    @classmethod
    def from_config(cls, settings: Settings, params: ObjParams | None = None) -> "ECRImages":
        """Create an ECRImages client from Settings."""
        return cls(
            params=params or ObjParams.default(),
            config=settings.aws,
            http_config=settings.http,
        )

    def _call(self, operation: str, func: Callable[..., T], **kwargs: Any) -> T:
        """Call an SDK operation, wrapping SDK errors in ImageLookupError.

        Args:
            operation: Description of the lookup (for messages).
            func: Bound boto3 client method.
            **kwargs: Arguments for `func`.

        Raises:
            ImageLookupError: The SDK call failed.
        """
        try:
            return func(**kwargs)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            msg = f"failed to {operation}: {error_code or e}"
            self._logger.error(msg, extra={"operation": operation, "error_code": error_code})
            raise ImageLookupError(msg) from e
        except BotoCoreError as e:
            msg = f"failed to {operation}: {e}"
            self._logger.error(msg, extra={"operation": operation})
            raise ImageLookupError(msg) from e

    def _load_json(self, document: str, what: str, image: str, tag: str) -> dict[str, Any]:
        try:
            data = json.loads(document)
        except json.JSONDecodeError as e:
            msg = f"failed to parse {what}: {image}:{tag}, error: {e}"
            raise ImageLookupError(msg) from e
        if not isinstance(data, dict):
            msg = f"failed to parse {what}: {image}:{tag}, expected a JSON object"
            raise ImageLookupError(msg)
        return data

    def _batch_get_image(self, image: str, tag: str, digest: str = "") -> list[dict[str, Any]]:
        """Return the images matching `digest`, or `tag` when no digest is given."""
        self._logger.debug("Getting info about image tag", extra={"image": image, "tag": tag, "digest": digest})
        image_id = {"imageDigest": digest} if digest else {"imageTag": tag}
        output = self._call(
            f"get image {image}:{tag}",
            self.client.batch_get_image,
            repositoryName=image,
            imageIds=[image_id],
            acceptedMediaTypes=list(ACCEPTED_MEDIA_TYPES),
        )
        images: list[dict[str, Any]] = output.get("images", [])
        if self.params.logger.isEnabledFor(TRACE):
            for item in images:
                self.params.logger.log(TRACE, "Image manifest", extra={"manifest": item.get("imageManifest")})
        return images

    @traced
    def get_manifest_digest(self, image: str, tag: str) -> str:
        """Return the digest of the first manifest in the image index for `tag`.

        Returns:
            The manifest digest, or "" when the tag has no image or the index
            lists no manifests.
        """
        images = self._batch_get_image(image, tag)
        if not images:
            return ""
        index = self._load_json(images[0].get("imageManifest", ""), "image index", image, tag)
        manifests = index.get("manifests") or []
        if not manifests:
            return ""
        digest: str = manifests[0].get("digest", "")
        self._logger.debug("Image tag", extra={"image": image, "tag": tag, "manifest_digest": digest})
        return digest

    @traced
    def get_config_digest(self, image: str, tag: str, digest: str) -> str:
        """Return the config layer digest of the manifest identified by `digest`."""
        images = self._batch_get_image(image, tag, digest)
        if not images:
            return ""
        manifest = self._load_json(images[0].get("imageManifest", ""), "image manifest", image, tag)
        config_digest: str = (manifest.get("config") or {}).get("digest", "")
        self._logger.debug("Image tag", extra={"image": image, "tag": tag, "config_digest": config_digest})
        return config_digest

    @traced
    def get_config_labels(self, image: str, tag: str, digest: str) -> dict[str, str]:
        """Download the config layer `digest` and return its labels.

        Args:
            image: Repository name.
            tag: Image tag (for messages).
            digest: Config layer digest.

        Returns:
            The image labels; empty when the config has none.

        Raises:
            ImageLookupError: The URL lookup, download or parse failed.
        """
        output = self._call(
            f"get image layers {image}:{tag}",
            self.client.get_download_url_for_layer,
            repositoryName=image,
            layerDigest=digest,
        )
        self._logger.debug("Image layers", extra={"image": image, "tag": tag})

        assert self.executor is not None
        try:
            with self.executor.exchange(Method.GET, output.get("downloadUrl")) as result:
                data = result.body_text
        except ExchangeError as e:
            msg = f"failed to download: {image}:{tag}, error: {e}"
            raise ImageLookupError(msg) from e

        if self.params.logger.isEnabledFor(TRACE):
            self.params.logger.log(TRACE, "Downloaded config", extra={"data": data})

        document = self._load_json(data, "downloaded data", image, tag)
        labels: dict[str, str] = (document.get("config") or {}).get("Labels") or {}
        return labels

    @traced
    def get_runner_version_label(self, image: str, tag: str) -> str:
        """Return the `actions-runner-version` label of `image:tag` ("" when absent)."""
        manifest_digest = self.get_manifest_digest(image, tag)
        config_digest = self.get_config_digest(image, tag, manifest_digest)
        labels = self.get_config_labels(image, tag, config_digest)
        return labels.get(RUNNER_VERSION_LABEL, "")

    @traced
    def list_image_tags(self, repository: str) -> list[str]:
        """Return every tag of every tagged image in `repository`.

        Raises:
            ImageLookupError: The describe_images call failed.
        """
        paginator = self.client.get_paginator("describe_images")
        tags: list[str] = []

        def collect() -> None:
            for page in paginator.paginate(
                repositoryName=repository,
                filter={"tagStatus": "TAGGED"},
                PaginationConfig={"PageSize": DESCRIBE_IMAGES_PAGE_SIZE},
            ):
                for detail in page.get("imageDetails", []):
                    tags.extend(detail.get("imageTags", []))

        self._call(f"get images for {repository}", collect)
        return tags

    @traced
    def apply_policy(self, policy: str, tag: str) -> bool:
        """Return whether `tag` is a version satisfying `policy`.

        Args:
            policy: PEP 440 specifier set, e.g. ">=2.300, <3". Pre-releases
                only match when the policy names one.
            tag: Image tag.

        Returns:
            False for an invalid policy or a tag that is not a version.
        """
        try:
            specifier = SpecifierSet(policy)
        except InvalidSpecifier:
            self.params.logger.log(TRACE, "failed to create constraint", extra={"policy": policy})
            return False
        try:
            version = Version(tag)
        except InvalidVersion:
            self.params.logger.log(TRACE, "failed to parse tag version", extra={"tag": tag})
            return False

        accepted = specifier.contains(version)
        if not accepted and self.params.logger.isEnabledFor(TRACE):
            print(f"tag: {tag} failed validation", file=self.params.log_out)
            print(f"{version} does not satisfy {specifier}", file=self.params.log_out)
        return accepted

    @traced
    def max_image(self, policy: str, current: str, new: str) -> str:
        """Return the higher of `current` and `new`, considering `new` only if it satisfies `policy`.

        A winning `new` is returned in normalized form ("v2.320.0" becomes
        "2.320.0"); otherwise `current` is returned unchanged.
        """
        if not self.apply_policy(policy, new):
            return current
        try:
            current_version = Version(current)
        except InvalidVersion:
            self.params.logger.log(TRACE, "failed to parse tag version", extra={"tag": current})
            return current

        new_version = Version(new)
        if new_version > current_version:
            return str(new_version)
        return current

    @traced
    def get_latest_image(self, repository: str, policy: str) -> str:
        """Return the highest tag in `repository` satisfying `policy`.

        Returns:
            The normalized version, or NO_IMAGE_VERSION ("0.0.0") when no tag
            matches or the repository has no tagged images.

        Raises:
            ImageLookupError: The describe_images call failed.
        """
        latest = NO_IMAGE_VERSION
        trace = self.params.logger.isEnabledFor(TRACE)
        for tag in self.list_image_tags(repository):
            if trace:
                print(f"tag: {tag}", file=self.params.log_out)
            latest = self.max_image(policy, latest, tag)
        self._logger.debug("Latest image", extra={"repository": repository, "policy": policy, "version": latest})
        return latest
