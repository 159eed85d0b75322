"""
Build artifact retrieval and decompression.

Downloads the gzipped WASMs published for a git revision and produces the
decompressed variant used to check that both delivery paths install the
same module.
"""

import gzip
import tempfile
import zlib
from pathlib import Path
from typing import Dict, Optional, Tuple

import httpx
from loguru import logger

from ..config import ValidatorConfig
from ..core.constants import GZIP_MAGIC, HTTP_TIMEOUT, NNS_GOVERNANCE_WASM_NAME
from ..core.dataclasses import ArtifactReference
from ..core.enums import ArtifactVariant, CanisterType
from ..core.exceptions import IntegrityError, TransientNetworkError


class ArtifactStore:
    """
    Local cache of build artifacts, keyed by git revision.

    Compressed artifacts are fetched once per canister type and version and
    reused by every ordering; the bytes on disk are what gets proposed.
    """

    def __init__(
        self,
        config: ValidatorConfig,
        http_client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.http_client = http_client or httpx.Client(
            timeout=HTTP_TIMEOUT, follow_redirects=True
        )
        self.cache_root = Path(
            config.artifact_cache_dir
            or tempfile.mkdtemp(prefix="sns-upgrade-artifacts-")
        )
        self.cache_dir = self.cache_root / config.target_version
        self._compressed: Dict[Tuple[CanisterType, str], ArtifactReference] = {}

    def artifact_url(self, wasm_name: str, version: Optional[str] = None) -> str:
        base = self.config.artifact_base_url.rstrip("/")
        version = version or self.config.target_version
        return f"{base}/{version}/canisters/{wasm_name}.wasm.gz"

    def _download(self, wasm_name: str, version: str) -> Tuple[bytes, Path]:
        cache_dir = self.cache_root / version
        cache_dir.mkdir(parents=True, exist_ok=True)
        path = cache_dir / f"{wasm_name}.wasm.gz"
        if path.exists():
            return path.read_bytes(), path

        url = self.artifact_url(wasm_name, version)
        logger.info(f"Downloading {url}")
        try:
            response = self.http_client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransientNetworkError(
                f"Artifact download {url} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Artifact download {url} failed: {e}") from e

        path.write_bytes(response.content)
        return response.content, path

    def compressed(
        self, canister_type: CanisterType, version: Optional[str] = None
    ) -> ArtifactReference:
        """The gzipped WASM for a canister type, by default at the target version."""
        version = version or self.config.target_version
        key = (canister_type, version)
        if key not in self._compressed:
            content, path = self._download(canister_type.wasm_name, version)
            self._compressed[key] = ArtifactReference.from_bytes(
                canister_type, ArtifactVariant.COMPRESSED, content, path, version
            )
        return self._compressed[key]

    def nns_governance(self) -> ArtifactReference:
        """Test build of NNS governance at the target version."""
        version = self.config.target_version
        content, path = self._download(NNS_GOVERNANCE_WASM_NAME, version)
        return ArtifactReference.from_bytes(
            CanisterType.GOVERNANCE, ArtifactVariant.COMPRESSED, content, path, version
        )

    def decompress(self, artifact: ArtifactReference) -> ArtifactReference:
        """
        Produce the decompressed variant of a compressed artifact.

        Content without a gzip header is passed through unchanged, so the
        caller sees identical hashes and can fail the integrity check.

        Raises:
            IntegrityError: If the gzip stream is corrupt
        """
        content = artifact.content
        if content.startswith(GZIP_MAGIC):
            try:
                content = gzip.decompress(content)
            except (OSError, EOFError, zlib.error) as e:
                raise IntegrityError(
                    f"Corrupt gzip stream in {artifact.path.name}: {e}"
                ) from e
        else:
            logger.warning(f"{artifact.path.name} has no gzip header")

        name = artifact.path.name
        if name.endswith(".gz"):
            name = name[: -len(".gz")]
        else:
            name = f"{name}.decompressed"
        path = artifact.path.with_name(name)
        path.write_bytes(content)

        return ArtifactReference.from_bytes(
            artifact.canister_type,
            ArtifactVariant.DECOMPRESSED,
            content,
            path,
            artifact.version,
        )
